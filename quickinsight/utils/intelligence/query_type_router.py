"""
QuickInsight Query Type Router
==============================

Classifies a natural-language analytics question into one of the QueryType
intents.

Two methods, one router:
1. Keyword scoring (fast path, deterministic): primary keyword hits are
   worth 2, secondary hits 1, over a case-insensitive substring search of
   KEYWORD_RULES. Domain terms raise confidence.
2. Model fallback: only when keyword confidence < 0.7 and a model client
   is supplied. A model failure never propagates - it degrades to an
   'unknown' result at 0.3 and the keyword result wins.

Usage:
    result = await classify_query_type("按照地区统计销售额")
    result.query_type  # QueryType.KPI_GROUPED
"""

import json
import logging
import re
from typing import Dict, List, Optional, Tuple

from ...errors import ModelClientError
from .types import ClassificationMethod, QueryType, QueryTypeClassification
from .vocabulary import (
    CHINESE_NUMERALS,
    DOMAIN_TERMS,
    GROUPED_BOOST,
    KEYWORD_RULES,
    PRIMARY_WEIGHT,
    SECONDARY_WEIGHT,
    TOP_N_DIGIT_PATTERNS,
)

logger = logging.getLogger(__name__)

KEYWORD_CONFIDENCE_THRESHOLD = 0.7
SCHEMA_DIGEST_PROMPT_CHARS = 500
MODEL_TEMPERATURE = 0.3
MODEL_MAX_TOKENS = 150
MODEL_DEFAULT_CONFIDENCE = 0.7
MODEL_FAILURE_CONFIDENCE = 0.3

CLASSIFIER_SYSTEM_PROMPT = """You are a query type classifier. Classify the user's query into ONE of these types:
- kpi_single: single value statistics (total, count, average)
- kpi_grouped: grouped aggregation (group by dimension)
- trend_time: time series trend (daily, monthly trends)
- distribution: distribution/percentage analysis
- topn: ranking/top N queries
- comparison: comparison between entities
- unknown: cannot classify

Return ONLY a JSON object with keys: queryType (string), confidence (0-1), reasoning (brief)."""

CLASSIFIER_USER_PROMPT = """Classify this query:
"{query}"

Schema context (first 500 chars):
{schema}

Return JSON only."""


# =============================================================================
# KEYWORD CLASSIFICATION
# =============================================================================

def get_domain_terms(industry: Optional[str] = None) -> List[str]:
    """Industry terms plus the general list; every industry's terms when industry is unknown."""
    if not industry or industry not in DOMAIN_TERMS:
        return [term for terms in DOMAIN_TERMS.values() for term in terms]
    return list(DOMAIN_TERMS[industry]) + list(DOMAIN_TERMS["general"])


def extract_top_n(text: str) -> Optional[int]:
    """Digit forms ('top 10', '前5') first, then '前' + a Chinese numeral word. First match wins."""
    for pattern in TOP_N_DIGIT_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1))

    for word, number in CHINESE_NUMERALS:
        if f"前{word}" in text:
            return number

    return None


def _score(lower_input: str) -> Dict[QueryType, Tuple[float, List[str]]]:
    scores = {}
    for query_type, rules in KEYWORD_RULES.items():
        keywords = []
        primary = 0
        secondary = 0
        for keyword in rules["primary"]:
            if keyword.lower() in lower_input:
                primary += 1
                keywords.append(keyword)
        for keyword in rules["secondary"]:
            if keyword.lower() in lower_input:
                secondary += 1
                keywords.append(keyword)

        score = primary * PRIMARY_WEIGHT + secondary * SECONDARY_WEIGHT
        # grouping + stats words should beat a bare total
        if query_type == QueryType.KPI_GROUPED and primary > 0 and secondary > 0:
            score += GROUPED_BOOST
        scores[query_type] = (score, keywords)
    return scores


def classify_by_keywords(user_input: str, industry: Optional[str] = None) -> QueryTypeClassification:
    lower_input = user_input.lower()

    best_type = QueryType.UNKNOWN
    best_score = 0.0
    matched: List[str] = []
    # strict '>' keeps the first declared type on ties
    for query_type, (score, keywords) in _score(lower_input).items():
        if score > best_score:
            best_type, best_score, matched = query_type, score, keywords

    if best_score == 0:
        return QueryTypeClassification(query_type=QueryType.UNKNOWN, confidence=0.0)

    has_domain_term = any(term.lower() in lower_input for term in get_domain_terms(industry))

    if best_score >= 4 or (best_score >= 2 and has_domain_term):
        confidence = 1.0 if has_domain_term else 0.9
    elif best_score >= 2:
        confidence = 0.75
    else:
        confidence = 0.6

    return QueryTypeClassification(
        query_type=best_type,
        confidence=confidence,
        matched_keywords=tuple(matched),
        method=ClassificationMethod.KEYWORD,
        top_n=extract_top_n(user_input) if best_type == QueryType.TOPN else None,
    )


# =============================================================================
# MODEL CLASSIFICATION
# =============================================================================

def _parse_json_object(response: str) -> Dict:
    """Parse a JSON object from a model response, tolerating surrounding prose."""
    response = (response or "").strip()
    if not response:
        raise ValueError("Empty model response")

    try:
        result = json.loads(response)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", response)
        if not match:
            raise ValueError("No JSON object in model response")
        result = json.loads(match.group())

    if not isinstance(result, dict):
        raise ValueError("Model response is not a JSON object")
    return result


async def classify_by_llm(client, user_input: str, schema_digest: str = "") -> QueryTypeClassification:
    """
    Ask the model to classify. Never raises: transport or parse failures
    return 'unknown' at confidence 0.3.
    """
    messages = [
        {"role": "system", "content": CLASSIFIER_SYSTEM_PROMPT},
        {"role": "user", "content": CLASSIFIER_USER_PROMPT.format(
            query=user_input,
            schema=(schema_digest or "")[:SCHEMA_DIGEST_PROMPT_CHARS],
        )},
    ]

    try:
        content = await client.chat(messages, temperature=MODEL_TEMPERATURE, max_tokens=MODEL_MAX_TOKENS)
        parsed = _parse_json_object(content)
    except (ModelClientError, ValueError) as e:
        logger.error(f"[ROUTER] Model classification failed: {e}")
        return QueryTypeClassification(
            query_type=QueryType.UNKNOWN,
            confidence=MODEL_FAILURE_CONFIDENCE,
            matched_keywords=("LLM failed",),
            method=ClassificationMethod.MODEL,
        )

    try:
        query_type = QueryType(parsed.get("queryType"))
    except ValueError:
        query_type = QueryType.UNKNOWN

    confidence = parsed.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = MODEL_DEFAULT_CONFIDENCE
    confidence = min(max(float(confidence), 0.0), 1.0)

    return QueryTypeClassification(
        query_type=query_type,
        confidence=confidence,
        matched_keywords=(f"LLM: {parsed.get('reasoning') or 'classified'}",),
        method=ClassificationMethod.MODEL,
        top_n=extract_top_n(user_input) if query_type == QueryType.TOPN else None,
    )


# =============================================================================
# ROUTER
# =============================================================================

async def classify_query_type(user_input: str,
                              industry: Optional[str] = None,
                              client=None,
                              schema_digest: str = "") -> QueryTypeClassification:
    """
    Hybrid classification. The keyword result is returned as-is when it is
    confident enough or no model client is given; otherwise the model
    result is used only if its confidence is strictly higher.
    """
    keyword_result = classify_by_keywords(user_input, industry)
    logger.info(f"[ROUTER] Keyword result: {keyword_result.query_type.value} "
                f"({keyword_result.confidence})")

    if keyword_result.confidence >= KEYWORD_CONFIDENCE_THRESHOLD or client is None:
        return keyword_result

    model_result = await classify_by_llm(client, user_input, schema_digest)
    logger.info(f"[ROUTER] Model result: {model_result.query_type.value} "
                f"({model_result.confidence})")

    if model_result.confidence > keyword_result.confidence:
        return model_result
    return keyword_result
