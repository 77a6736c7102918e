"""
QuickInsight Digest Builder
===========================

Renders a table's skill configuration (field mapping, default filters,
metric overrides) as a compact text block for prompt injection.

Budget strategy is deterministic:
- Field mapping is always included in full.
- Filters keep the first max_filters entries (Top-N), metrics the first
  max_metrics entries (Top-K), in insertion order. The remainder collapses
  into a single "+K more" line.
- The assembled string is hard-truncated to user_skill_digest_max_chars.
  Truncation is applied to the whole string, so a long early section can
  crowd out later ones.
"""

import json
import logging
from typing import Dict, List, Optional

from .types import (
    DigestOptions,
    FieldMapping,
    FilterExpr,
    MetricDefinition,
    RelativeTimeValue,
    TableSkillConfig,
    UserSkillConfig,
)

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n... (truncated)"


# =============================================================================
# SECTIONS
# =============================================================================

def _field_mapping_section(mapping: Optional[FieldMapping]) -> str:
    if not mapping:
        return ""

    lines = []
    if mapping.order_id_column:
        lines.append(f"  - order_id: {mapping.order_id_column}")
    if mapping.user_id_column:
        lines.append(f"  - user_id: {mapping.user_id_column}")
    if mapping.time_column:
        lines.append(f"  - time: {mapping.time_column}")
    if mapping.amount_column:
        lines.append(f"  - amount: {mapping.amount_column}")

    if not lines:
        return ""
    return "Field mapping:\n" + "\n".join(lines)


def _format_filter_value(value) -> str:
    if isinstance(value, RelativeTimeValue):
        return f"relative_time({value.amount} {value.unit.value} {value.direction.value})"
    if isinstance(value, tuple):
        value = list(value)
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _filters_section(filters: List[FilterExpr], max_filters: int) -> str:
    if not filters:
        return ""

    lines = []
    for f in filters[:max_filters]:
        op = getattr(f.op, "value", f.op)
        lines.append(f"  - {f.column} {op} {_format_filter_value(f.value)}")

    if len(filters) > max_filters:
        lines.append(f"  - +{len(filters) - max_filters} more filters")

    return "Default filters:\n" + "\n".join(lines)


def _metrics_section(metrics: Dict[str, MetricDefinition], max_metrics: int) -> str:
    if not metrics:
        return ""

    entries = list(metrics.items())
    lines = []
    for name, metric in entries[:max_metrics]:
        aggregation = getattr(metric.aggregation, "value", metric.aggregation)
        column_part = f"({metric.column})" if metric.column else ""
        where_part = f" WHERE {len(metric.where)} conditions" if metric.where else ""
        lines.append(f"  - {name}: {aggregation}{column_part}{where_part}")

    if len(entries) > max_metrics:
        lines.append(f"  - +{len(entries) - max_metrics} more metrics")

    return "Metrics overrides:\n" + "\n".join(lines)


# =============================================================================
# PUBLIC API
# =============================================================================

def build_table_skill_digest(table_name: str,
                             table_config: TableSkillConfig,
                             options: Optional[DigestOptions] = None) -> str:
    """Digest for one table, untruncated."""
    opts = options or DigestOptions()

    sections = [f"Active table: {table_name}"]
    for section in (
        _field_mapping_section(table_config.field_mapping),
        _filters_section(table_config.default_filters, opts.max_filters),
        _metrics_section(table_config.metrics, opts.max_metrics),
    ):
        if section:
            sections.append(section)

    return "\n\n".join(sections)


def build_user_skill_digest(user_skill_config: Optional[UserSkillConfig],
                            active_table: Optional[str],
                            options: Optional[DigestOptions] = None) -> str:
    """
    Digest for the active table, hard-truncated to the character budget.

    Returns '' when there is no configuration, no active table, or the
    active table has no configuration.
    """
    if not user_skill_config or not active_table:
        return ""

    table_config = user_skill_config.tables.get(active_table)
    if not table_config:
        return ""

    opts = options or DigestOptions()
    digest = build_table_skill_digest(active_table, table_config, opts)

    max_chars = opts.user_skill_digest_max_chars
    if len(digest) > max_chars:
        logger.warning(f"[DIGEST] User skill digest truncated from {len(digest)} to {max_chars} chars")
        digest = digest[:max_chars] + TRUNCATION_MARKER

    return digest


def get_digest_stats(digest: str) -> Dict[str, int]:
    return {"chars": len(digest), "lines": len(digest.split("\n"))}


def check_digest_budget(digest: str, max_chars: int = DigestOptions.user_skill_digest_max_chars) -> bool:
    return len(digest) <= max_chars
