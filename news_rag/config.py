"""
Centralized Configuration Module

Provides a single source of truth for all system configuration parameters.
Loads settings from environment variables with sensible defaults and validation.
Components receive a Config instance explicitly; get_config() only exists for
entry points such as the CLI.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

from .storage.models import EMBEDDING_DIMENSIONS

# Load environment variables
load_dotenv()


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class Config:
    """
    Centralized configuration for the crypto news RAG system.

    All configuration parameters are loaded from environment variables
    with sensible defaults. Validation is performed on initialization.
    """

    # News Feed Settings
    news_api_url: str = field(default="https://min-api.cryptocompare.com/data/v2/news/?lang=EN")
    news_api_timeout: int = field(default=30)

    # Model Service Settings
    model_base_url: str = field(default="http://localhost:8080")
    model_connect_timeout: int = field(default=10)
    model_timeout: int = field(default=1200)
    model_max_redirects: int = field(default=5)
    model_force_http: bool = field(default=True)
    model_verify_ssl: bool = field(default=True)
    embedding_dimensions: int = field(default=EMBEDDING_DIMENSIONS)

    # Database Settings
    database_url: str = field(default="")
    database_echo: bool = field(default=False)

    # Pipeline Settings
    max_items_per_run: int = field(default=20)
    top_k_default: int = field(default=5)
    distance_cutoff: float = field(default=0.5)

    def __post_init__(self):
        """Load configuration from environment and validate."""
        self._load_from_environment()
        self._validate()

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # News Feed Settings
        self.news_api_url = self._get_env_str('CRYPTO_NEWS_API_URL', self.news_api_url)
        self.news_api_timeout = self._get_env_int('NEWS_API_TIMEOUT', self.news_api_timeout)

        # Model Service Settings
        self.model_base_url = self._get_env_str('MODEL_BASE_URL', self.model_base_url)
        self.model_connect_timeout = self._get_env_int('MODEL_CONNECT_TIMEOUT', self.model_connect_timeout)
        self.model_timeout = self._get_env_int('MODEL_TIMEOUT', self.model_timeout)
        self.model_max_redirects = self._get_env_int('MODEL_MAX_REDIRECTS', self.model_max_redirects)
        self.model_force_http = self._get_env_bool('MODEL_FORCE_HTTP', self.model_force_http)
        self.model_verify_ssl = self._get_env_bool('MODEL_VERIFY_SSL', self.model_verify_ssl)
        self.embedding_dimensions = self._get_env_int('EMBEDDING_DIMENSIONS', self.embedding_dimensions)

        # Database Settings
        self.database_url = self._get_env_str('DATABASE_URL', self.database_url)
        if not self.database_url:
            self.database_url = self._compose_database_url()
        self.database_echo = self._get_env_bool('DATABASE_ECHO', self.database_echo)

        # Pipeline Settings
        self.max_items_per_run = self._get_env_int('MAX_ITEMS_PER_RUN', self.max_items_per_run)
        self.top_k_default = self._get_env_int('TOP_K_DEFAULT', self.top_k_default)
        self.distance_cutoff = self._get_env_float('DISTANCE_CUTOFF', self.distance_cutoff)

    def _compose_database_url(self) -> str:
        """Build a PostgreSQL URL from the individual DB_* variables."""
        host = self._get_env_str('DB_HOST', 'localhost')
        port = self._get_env_int('DB_PORT', 5432)
        user = self._get_env_str('DB_USER', 'postgres')
        password = self._get_env_str('DB_PASSWORD', 'password')
        name = self._get_env_str('DB_NAME', 'mydb')
        return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"

    def _get_env_str(self, key: str, default: str) -> str:
        """Get string value from environment."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
        return value

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid integer value for {key}: '{value}'"
            )

    def _get_env_float(self, key: str, default: float) -> float:
        """Get float value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid float value for {key}: '{value}'"
            )

    def _get_env_bool(self, key: str, default: bool) -> bool:
        """Get boolean value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        value = value.lower().strip()
        if value in ('true', '1', 'yes', 'on'):
            return True
        elif value in ('false', '0', 'no', 'off'):
            return False
        else:
            return default

    def _validate(self):
        """Validate configuration parameters."""
        if not self.database_url:
            raise ConfigValidationError("database_url cannot be empty")

        # Validate positive integers
        positive_int_fields = [
            ('embedding_dimensions', self.embedding_dimensions),
            ('max_items_per_run', self.max_items_per_run),
            ('top_k_default', self.top_k_default),
        ]

        for field_name, value in positive_int_fields:
            if value <= 0:
                raise ConfigValidationError(
                    f"{field_name} must be positive, got {value}"
                )

        # The embedding column is created with a fixed width
        if self.embedding_dimensions != EMBEDDING_DIMENSIONS:
            raise ConfigValidationError(
                f"embedding_dimensions must be {EMBEDDING_DIMENSIONS} to match the stored vector column, "
                f"got {self.embedding_dimensions}"
            )

        if self.model_max_redirects < 0:
            raise ConfigValidationError(
                f"model_max_redirects cannot be negative, got {self.model_max_redirects}"
            )

        # Validate timeouts (at least 1 second)
        for field_name, value in [
            ('news_api_timeout', self.news_api_timeout),
            ('model_connect_timeout', self.model_connect_timeout),
            ('model_timeout', self.model_timeout),
        ]:
            if value < 1:
                raise ConfigValidationError(
                    f"{field_name} must be at least 1, got {value}"
                )

        # Cosine distance lives in [0, 2]
        if not 0.0 <= self.distance_cutoff <= 2.0:
            raise ConfigValidationError(
                f"distance_cutoff must be between 0 and 2, got {self.distance_cutoff}"
            )

        # Validate URL format
        for field_name, url in [
            ('news_api_url', self.news_api_url),
            ('model_base_url', self.model_base_url),
        ]:
            parsed = urlparse(url)
            if not all([parsed.scheme, parsed.netloc]):
                raise ConfigValidationError(
                    f"Invalid URL for {field_name}: {url}"
                )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def __repr__(self) -> str:
        """String representation of configuration, with the database password masked."""
        items = []
        for key, value in self.to_dict().items():
            if key == 'database_url':
                value = _mask_password(value)
            items.append(f"{key}={value!r}")
        return f"Config({', '.join(items)})"

    def update(self, **kwargs):
        """
        Update configuration values with validation.

        Args:
            **kwargs: Configuration parameters to update

        Raises:
            ConfigValidationError: If validation fails
        """
        # Store original values for rollback
        original_values = {}

        try:
            for key, value in kwargs.items():
                if not hasattr(self, key):
                    raise ConfigValidationError(f"Unknown configuration parameter: {key}")
                original_values[key] = getattr(self, key)
                setattr(self, key, value)

            self._validate()

        except Exception:
            for key, value in original_values.items():
                setattr(self, key, value)
            raise

    def get_pipeline_config(self) -> Dict[str, Any]:
        """Get ingestion and retrieval configuration."""
        return {
            'max_items_per_run': self.max_items_per_run,
            'top_k_default': self.top_k_default,
            'distance_cutoff': self.distance_cutoff,
        }


def _mask_password(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.password:
        return url
    return url.replace(f":{parsed.password}@", ":***@", 1)


# Singleton instance
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        Config: Global configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reset_config():
    """Reset the global configuration instance."""
    global _config_instance
    _config_instance = None
