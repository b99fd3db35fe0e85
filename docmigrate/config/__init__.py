"""
Configuration management
"""
from .manager import (
    ConfigManager,
    DatabaseSettings,
    MigrationSettings,
    MigratorConfig,
    RetrySettings
)
