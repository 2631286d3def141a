# logsieve/core/config.py
"""
Configuration management for logsieve
All tunables in one place, can be overridden via environment variables
"""

import logging
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """
    Global analysis settings
    Can be overridden with LOGSIEVE_* environment variables
    """

    # ===== APP METADATA =====
    app_name: str = "logsieve"
    version: str = "0.1.0"

    # ===== VECTORIZATION =====
    default_mode: str = "tfidf"  # tfidf | sql | os | dir | walu | number
    walu_min_length: int = 20  # Shorter walu vectors are treated as malformed
    number_strict_length: bool = False  # Raise instead of skipping on length mismatch

    # ===== TF-IDF MODEL =====
    tfidf_stop_words: Optional[str] = "english"  # None disables stop-word removal
    tfidf_lowercase: bool = True
    tfidf_token_pattern: str = r"(?u)\b\w\w+\b"

    # ===== ISOLATION FOREST =====
    forest_num_trees: int = 1000
    forest_sample_size: int = 256
    forest_batch_size: int = 100  # Trees grown between cancellation checks
    forest_random_seed: Optional[int] = None  # Fix for reproducible runs
    forest_n_jobs: int = 1

    # ===== RARITY FILTER =====
    rarity_threshold: float = 0.5  # Similarity above this counts as a close match
    rarity_allowance: int = 0  # Close matches tolerated before a record is "not rare"
    rarity_top_n: int = 0  # 0 = fixed threshold mode
    rarity_block_size: int = 2048  # Columns compared per step (early exit granularity)
    rarity_workers: int = 1

    # ===== PROGRESS / LOGGING =====
    progress_interval: int = Field(default=100)  # Records between progress events
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    model_config = SettingsConfigDict(
        env_prefix="LOGSIEVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("rarity_threshold")
    @classmethod
    def check_threshold(cls, v):
        """Similarities live in [0, 1]"""
        if not 0.0 <= v <= 1.0:
            raise ValueError("rarity_threshold must be within [0, 1]")
        return v

    @field_validator("rarity_allowance", "rarity_top_n")
    @classmethod
    def check_non_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator(
        "forest_num_trees",
        "forest_sample_size",
        "forest_batch_size",
        "rarity_block_size",
        "rarity_workers",
        "progress_interval",
    )
    @classmethod
    def check_positive(cls, v):
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("default_mode", "log_level", mode="before")
    @classmethod
    def normalize_case(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    def __repr__(self):
        return f"<Settings(app={self.app_name} v{self.version}, mode={self.default_mode})>"


# ===== GLOBAL SETTINGS INSTANCE =====
# This is imported throughout the package
settings = Settings()


# ===== HELPER FUNCTIONS =====

def get_settings() -> Settings:
    """
    Get the global settings instance
    Useful for dependency injection in tests
    """
    return settings


def reload_settings():
    """
    Reload settings from environment
    Useful if env vars change during runtime
    """
    global settings
    settings = Settings()
    return settings


def configure_logging(level: Optional[str] = None):
    """
    Console logging for scripts and tests.
    Library modules only create loggers, they never add handlers.
    """
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    return logging.getLogger("logsieve")
