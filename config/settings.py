"""
Settings for the graph context chat service

Simple config-file based settings. No external services required - just a YAML
file with defaults and environment variables that override it.

Usage:
    from config import get_settings

    settings = get_settings()

    if settings.redis_url:
        # Use the shared Redis cache
        pass
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "NEO4J_URI": "neo4j.uri",
    "NEO4J_USERNAME": "neo4j.username",
    "NEO4J_PASSWORD": "neo4j.password",
    "NEO4J_DATABASE": "neo4j.database",
    "MONGO_URI": "mongo.uri",
    "MONGO_DB_NAME": "mongo.db_name",
    "REDIS_URL": "redis.url",
    "LLM_PROVIDER": "llm.provider",
    "ANTHROPIC_API_KEY": "llm.anthropic_api_key",
    "ANTHROPIC_MODEL": "llm.anthropic_model",
    "OPENAI_API_KEY": "llm.openai_api_key",
    "OPENAI_MODEL": "llm.openai_model",
    "LLM_MAX_TOKENS": "llm.max_tokens",
    "ENRICHMENT_MAX_TOKENS": "llm.enrichment_max_tokens",
    "CONTEXT_CACHE_TTL": "context.cache_ttl_seconds",
    "CONTEXT_TIMEOUT": "timeouts.context_seconds",
    "ENRICHMENT_TIMEOUT": "timeouts.enrichment_seconds",
    "STREAM_TIMEOUT": "timeouts.stream_seconds",
    "JWT_SECRET": "auth.jwt_secret",
    "LOGGING_ENV": "logging.env",
}


class Settings:
    """
    Settings for the chat pipeline and its collaborators.

    Values are loaded from config/base.yaml and then overridden by the
    environment variables listed in ENV_OVERRIDES.
    """

    _instance = None

    def __new__(cls):
        """Singleton pattern - one instance per process"""
        if cls._instance is None:
            cls._instance = super(Settings, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        # Respect USE_DOTENV for deployments that inject env directly
        use_dotenv = os.getenv("USE_DOTENV", "true").lower() == "true"
        if use_dotenv:
            load_dotenv()

        self.config_dir = Path(__file__).parent
        self.config = self._load_config("base.yaml")
        self._apply_env_overrides()
        self._initialized = True

        logger.info(f"Settings initialized (llm provider: {self.llm_provider})")

    def _load_config(self, filename: str) -> Dict[str, Any]:
        """Load YAML config file"""
        config_path = self.config_dir / filename

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}")
            return {}

        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f)
                return config or {}
        except yaml.YAMLError as e:
            logger.error(f"Error loading config {filename}: {e}")
            return {}

    def _apply_env_overrides(self):
        for env_name, key in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value is None or value == "":
                continue
            section, name = key.split('.', 1)
            self.config.setdefault(section, {})[name] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a config value by key.

        Args:
            key: Config key (supports dot notation, e.g., "neo4j.uri")
            default: Default value if key not found

        Returns:
            Config value or default
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

            if value is None:
                return default

        return value

    def _get_int(self, key: str, default: int) -> int:
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid integer for {key}: {value!r}, using {default}")
            return default

    def _get_optional_float(self, key: str, default: Optional[float]) -> Optional[float]:
        value = self.get(key, default)
        if value is None or str(value).lower() in ("", "none", "null"):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid number for {key}: {value!r}, using {default}")
            return default

    # ==========================================
    # Graph store
    # ==========================================

    @property
    def neo4j_uri(self) -> Optional[str]:
        return self.get("neo4j.uri")

    @property
    def neo4j_username(self) -> Optional[str]:
        return self.get("neo4j.username")

    @property
    def neo4j_password(self) -> Optional[str]:
        return self.get("neo4j.password")

    @property
    def neo4j_database(self) -> Optional[str]:
        return self.get("neo4j.database")

    # ==========================================
    # Conversation store and cache
    # ==========================================

    @property
    def mongo_uri(self) -> Optional[str]:
        return self.get("mongo.uri")

    @property
    def mongo_db_name(self) -> Optional[str]:
        return self.get("mongo.db_name")

    @property
    def redis_url(self) -> Optional[str]:
        return self.get("redis.url")

    @property
    def context_cache_ttl(self) -> int:
        return self._get_int("context.cache_ttl_seconds", 300)

    @property
    def local_cache_maxsize(self) -> int:
        return self._get_int("context.local_cache_maxsize", 1000)

    # ==========================================
    # Traversal caps
    # ==========================================

    @property
    def topic_limit(self) -> int:
        return self._get_int("context.topic_limit", 5)

    @property
    def document_limit(self) -> int:
        return self._get_int("context.document_limit", 10)

    @property
    def recent_days(self) -> int:
        return self._get_int("context.recent_days", 30)

    @property
    def default_depth(self) -> int:
        return self._get_int("context.default_depth", 2)

    @property
    def history_turns(self) -> int:
        return self._get_int("context.history_turns", 10)

    # ==========================================
    # Text generation
    # ==========================================

    @property
    def llm_provider(self) -> str:
        return str(self.get("llm.provider", "anthropic")).lower()

    @property
    def anthropic_api_key(self) -> Optional[str]:
        return self.get("llm.anthropic_api_key")

    @property
    def anthropic_model(self) -> str:
        return self.get("llm.anthropic_model", "claude-sonnet-4-5-20250929")

    @property
    def openai_api_key(self) -> Optional[str]:
        return self.get("llm.openai_api_key")

    @property
    def openai_model(self) -> str:
        return self.get("llm.openai_model", "gpt-4o")

    @property
    def max_tokens(self) -> int:
        return self._get_int("llm.max_tokens", 4096)

    @property
    def enrichment_max_tokens(self) -> int:
        return self._get_int("llm.enrichment_max_tokens", 2048)

    # ==========================================
    # Timeouts (seconds, None disables)
    # ==========================================

    @property
    def context_timeout(self) -> Optional[float]:
        return self._get_optional_float("timeouts.context_seconds", 15.0)

    @property
    def enrichment_timeout(self) -> Optional[float]:
        return self._get_optional_float("timeouts.enrichment_seconds", 30.0)

    @property
    def stream_timeout(self) -> Optional[float]:
        return self._get_optional_float("timeouts.stream_seconds", None)

    # ==========================================
    # Auth and logging
    # ==========================================

    @property
    def jwt_secret(self) -> Optional[str]:
        return self.get("auth.jwt_secret")

    @property
    def session_cookie(self) -> str:
        return self.get("auth.session_cookie", "session")

    @property
    def is_production(self) -> bool:
        return str(self.get("logging.env", "development")).lower() == "production"


# ==========================================
# Global Instance
# ==========================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global Settings instance.

    Returns:
        Singleton Settings instance
    """
    global _settings_instance

    if _settings_instance is None:
        _settings_instance = Settings()

    return _settings_instance


def reset_settings() -> None:
    """Drop the cached instance so the next get_settings() re-reads env and YAML"""
    global _settings_instance
    _settings_instance = None
    Settings._instance = None
