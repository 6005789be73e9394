"""
Configuration Module

Configuração centralizada usando Pydantic Settings.
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_DATABASE_URL,
    DEFAULT_EXPORT_FETCH_SIZE,
    DEFAULT_INSERT_BATCH_SIZE,
    DEFAULT_MAX_OVERFLOW,
    DEFAULT_POOL_SIZE,
)


class Config(BaseSettings):
    """
    Configuração principal do projeto.

    Carrega variáveis de ambiente do arquivo .env
    """

    # ============================================================================
    # DATABASE
    # ============================================================================
    DATABASE_URL: str = Field(default=DEFAULT_DATABASE_URL, alias="database_url")
    DATABASE_USER: Optional[str] = Field(default=None, alias="database_user")
    DATABASE_PASSWORD: Optional[str] = Field(default=None, alias="database_password")

    # ============================================================================
    # CONNECTION POOL
    # ============================================================================
    DB_POOL_SIZE: int = Field(default=DEFAULT_POOL_SIZE, alias="db_pool_size")
    DB_MAX_OVERFLOW: int = Field(default=DEFAULT_MAX_OVERFLOW, alias="db_max_overflow")
    # None = bloqueia até uma conexão ser liberada (nunca falha)
    DB_POOL_TIMEOUT: Optional[float] = Field(default=None, alias="db_pool_timeout")

    # ============================================================================
    # LOAD / EXPORT
    # ============================================================================
    INSERT_BATCH_SIZE: int = Field(default=DEFAULT_INSERT_BATCH_SIZE, alias="insert_batch_size")
    EXPORT_FETCH_SIZE: int = Field(default=DEFAULT_EXPORT_FETCH_SIZE, alias="export_fetch_size")

    # ============================================================================
    # LOGGING
    # ============================================================================
    LOG_LEVEL: str = Field(default="INFO", alias="log_level")
    LOG_FORMAT: str = Field(default="console", alias="log_format")

    # ============================================================================
    # CONFIGURAÇÃO DO PYDANTIC
    # ============================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True
    )


# Singleton
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Obtém instância singleton da configuração.

    Returns:
        Config: Instância única da configuração
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = Config()

    return _config_instance


def reset_config():
    """Reseta o singleton (útil para testes)."""
    global _config_instance
    _config_instance = None
