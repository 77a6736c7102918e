"""
QuickInsight Configuration
Central configuration for all runtime settings
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file (for local development)
load_dotenv()


class AppConfig:
    """Application configuration and settings"""

    # ============================================================================
    # APP IDENTITY
    # ============================================================================
    APP_NAME = "QuickInsight"
    APP_VERSION = "1.0.0"

    # ============================================================================
    # LOGGING
    # ============================================================================
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # ============================================================================
    # DUCKDB
    # ============================================================================
    DUCKDB_PATH = os.environ.get('DUCKDB_PATH', ':memory:')

    # ============================================================================
    # LLM CONFIGURATION (SECURE - from environment)
    # ============================================================================
    LLM_PROVIDER = os.environ.get('LLM_PROVIDER', 'openai')   # openai | anthropic
    LLM_ENDPOINT = os.environ.get('LLM_ENDPOINT', '')          # OpenAI-compatible base URL
    LLM_API_KEY = os.environ.get('LLM_API_KEY', '')
    LLM_MODEL = os.environ.get('LLM_MODEL', 'gpt-4o-mini')
    LLM_TIMEOUT_SECONDS = float(os.environ.get('LLM_TIMEOUT_SECONDS', '30'))

    # Claude API Configuration (used when LLM_PROVIDER=anthropic)
    CLAUDE_API_KEY = os.environ.get('CLAUDE_API_KEY', '')
    CLAUDE_MODEL = os.environ.get('CLAUDE_MODEL', 'claude-sonnet-4-20250514')

    # ============================================================================
    # ANALYSIS
    # ============================================================================
    CLUSTERING_TIMEOUT_SECONDS = float(os.environ.get('CLUSTERING_TIMEOUT_SECONDS', '120'))
    DIGEST_MAX_CHARS = int(os.environ.get('DIGEST_MAX_CHARS', '1200'))

    @classmethod
    def llm_configured(cls) -> bool:
        """Whether a model is available for classification fallback."""
        if cls.LLM_PROVIDER == 'anthropic':
            return bool(cls.CLAUDE_API_KEY)
        return bool(cls.LLM_ENDPOINT)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def get_llm_config() -> dict:
    """Get LLM configuration"""
    if AppConfig.LLM_PROVIDER == 'anthropic':
        return {
            'provider': 'anthropic',
            'api_key': AppConfig.CLAUDE_API_KEY,
            'model': AppConfig.CLAUDE_MODEL,
            'timeout': AppConfig.LLM_TIMEOUT_SECONDS,
        }
    return {
        'provider': 'openai',
        'endpoint': AppConfig.LLM_ENDPOINT,
        'api_key': AppConfig.LLM_API_KEY,
        'model': AppConfig.LLM_MODEL,
        'timeout': AppConfig.LLM_TIMEOUT_SECONDS,
    }
