"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from forum_recovery.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from forum_recovery.config.loader import load_db_config
from forum_recovery.config.models import DatabaseConfig, DatabaseProfile

__all__ = ["load_db_config", "DatabaseConfig", "DatabaseProfile"]
