"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class LedgerConfig(BaseSettings):
    """Token ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="TOKEN_LEDGER_",
        env_file=".env",
        case_sensitive=False,
    )

    # Token metadata (display only, never applied arithmetically)
    token_name: str = "IncentiveToken"
    token_symbol: str = "ITK"
    token_decimals: int = 6
    token_uri: Optional[str] = None

    # Identities
    initial_admin: str = "deployer"
    sentinel_recipient: str = "deployer"  # Can never receive minted or transferred funds

    # Storage configuration
    storage_backend: str = "memory"  # memory or sqlite
    database_path: str = "token_ledger.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Feature flags
    enable_audit_logging: bool = True


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
