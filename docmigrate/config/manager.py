"""
Configuration Management
Loads migration settings from .env files, JSON/YAML files and environment variables
"""
import os
import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional
from pathlib import Path
import json
import yaml
from dotenv import load_dotenv

from ..core.database import DatabaseConfig, DatabaseType
from ..core.throttling import DEFAULT_THROTTLE_SIGNATURES

logger = logging.getLogger(__name__)

ENV_FILES = ('.env_local', '.env', 'config.env')


@dataclass
class DatabaseSettings:
    """Connection settings for one side of the migration"""
    connection_string: str = ""
    database_name: str = ""
    collection_name: str = ""
    db_type: DatabaseType = DatabaseType.MONGODB_ATLAS
    max_pool_size: int = 100
    min_pool_size: int = 0
    socket_timeout_ms: int = 30000
    connect_timeout_ms: int = 20000
    server_selection_timeout_ms: int = 30000

    def to_database_config(self) -> DatabaseConfig:
        return DatabaseConfig(
            connection_string=self.connection_string,
            database_name=self.database_name,
            collection_name=self.collection_name,
            db_type=self.db_type,
            max_pool_size=self.max_pool_size,
            min_pool_size=self.min_pool_size,
            socket_timeout_ms=self.socket_timeout_ms,
            connect_timeout_ms=self.connect_timeout_ms,
            server_selection_timeout_ms=self.server_selection_timeout_ms
        )


@dataclass
class RetrySettings:
    """Throttle handling settings"""
    insert_retries: int = 3
    min_wait_ms: int = 1500
    max_wait_ms: int = 3000
    max_fetch_retries: Optional[int] = None  # None: retry throttled reads forever
    throttle_signatures: List[str] = field(default_factory=lambda: list(DEFAULT_THROTTLE_SIGNATURES))


@dataclass
class MigrationSettings:
    """Batching and output settings"""
    batch_size: int = 1000
    max_concurrency: Optional[int] = None
    no_cursor_timeout: bool = True
    failed_docs_path: str = "failed_documents.json"


@dataclass
class MigratorConfig:
    """Main configuration"""
    log_level: str = "INFO"

    source_database: DatabaseSettings = field(
        default_factory=lambda: DatabaseSettings(db_type=DatabaseType.COSMOS_DB)
    )
    target_database: DatabaseSettings = field(default_factory=DatabaseSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    migration: MigrationSettings = field(default_factory=MigrationSettings)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_optional_int(value: str) -> Optional[int]:
    value = value.strip()
    if value == "" or value.lower() == "none":
        return None
    return int(value)


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class ConfigManager:
    """
    Configuration manager with support for:
    - .env files (python-dotenv)
    - Configuration files (JSON/YAML)
    - Environment variable overrides
    - Validation
    """

    def __init__(self, config_prefix: str = "MIGRATOR", load_env_files: bool = True):
        self.config_prefix = config_prefix
        self.config: Optional[MigratorConfig] = None
        if load_env_files:
            self._load_environment_variables()

    def _load_environment_variables(self):
        """Load environment variables from the first .env file found"""
        for env_file in ENV_FILES:
            if Path(env_file).exists():
                load_dotenv(env_file)
                logger.info(f"Loaded environment variables from {env_file}")
                break

    def load_config(self, config_file: Optional[str] = None) -> MigratorConfig:
        """Load configuration from file and environment variables"""
        config_data: Dict[str, Any] = {}

        if config_file:
            file_path = Path(config_file)
            if not file_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_file}")
            if self._is_dotenv(file_path):
                load_dotenv(config_file, override=True)
                logger.info(f"Loaded environment variables from {config_file}")
            else:
                config_data = self._load_config_file(file_path)

        self._merge(config_data, self._load_from_environment())

        self.config = self._create_config_object(config_data)
        self.validate(self.config)

        logger.info("Configuration loaded")
        return self.config

    @staticmethod
    def _is_dotenv(file_path: Path) -> bool:
        return (file_path.suffix.lower() == '.env' or
                file_path.name.startswith('.env') or
                file_path.name.endswith('.env'))

    def _load_config_file(self, file_path: Path) -> Dict[str, Any]:
        """Load configuration from a JSON or YAML file"""
        with open(file_path, 'r') as f:
            if file_path.suffix.lower() == '.json':
                data = json.load(f)
            elif file_path.suffix.lower() in ['.yml', '.yaml']:
                data = yaml.safe_load(f)
            else:
                raise ValueError(f"Unsupported configuration file format: {file_path.suffix}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file must contain a mapping: {file_path}")
        return data

    @staticmethod
    def _merge(base: Dict[str, Any], overrides: Dict[str, Any]):
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                ConfigManager._merge(base[key], value)
            else:
                base[key] = value

    def _env(self, name: str) -> Optional[str]:
        value = os.getenv(f"{self.config_prefix}_{name}")
        if value is None or value == "":
            return None
        return value

    def _set_from_env(self, section: Dict[str, Any], key: str, name: str, parse=None):
        value = self._env(name)
        if value is None:
            return
        try:
            section[key] = parse(value) if parse else value
        except ValueError:
            raise ValueError(f"Invalid value for {self.config_prefix}_{name}: {value!r}")

    def _load_from_environment(self) -> Dict[str, Any]:
        """Collect the environment variables that are actually set"""
        config: Dict[str, Any] = {}
        self._set_from_env(config, "log_level", "LOG_LEVEL")

        for side, prefix in (("source_database", "SOURCE_DB"), ("target_database", "TARGET_DB")):
            section: Dict[str, Any] = {}
            self._set_from_env(section, "connection_string", f"{prefix}_CONNECTION_STRING")
            self._set_from_env(section, "database_name", f"{prefix}_NAME")
            self._set_from_env(section, "collection_name", f"{prefix}_COLLECTION")
            self._set_from_env(section, "db_type", f"{prefix}_TYPE")
            self._set_from_env(section, "max_pool_size", f"{prefix}_MAX_POOL_SIZE", int)
            self._set_from_env(section, "min_pool_size", f"{prefix}_MIN_POOL_SIZE", int)
            self._set_from_env(section, "socket_timeout_ms", f"{prefix}_SOCKET_TIMEOUT_MS", int)
            self._set_from_env(section, "connect_timeout_ms", f"{prefix}_CONNECT_TIMEOUT_MS", int)
            if section:
                config[side] = section

        retry: Dict[str, Any] = {}
        self._set_from_env(retry, "insert_retries", "INSERT_RETRIES", int)
        self._set_from_env(retry, "min_wait_ms", "MIN_WAIT_MS", int)
        self._set_from_env(retry, "max_wait_ms", "MAX_WAIT_MS", int)
        self._set_from_env(retry, "max_fetch_retries", "MAX_FETCH_RETRIES", _parse_optional_int)
        self._set_from_env(retry, "throttle_signatures", "THROTTLE_SIGNATURES", _parse_list)
        if retry:
            config["retry"] = retry

        migration: Dict[str, Any] = {}
        self._set_from_env(migration, "batch_size", "BATCH_SIZE", int)
        self._set_from_env(migration, "max_concurrency", "MAX_CONCURRENCY", _parse_optional_int)
        self._set_from_env(migration, "no_cursor_timeout", "NO_CURSOR_TIMEOUT", _parse_bool)
        self._set_from_env(migration, "failed_docs_path", "FAILED_DOCS_PATH")
        if migration:
            config["migration"] = migration

        return config

    @staticmethod
    def _build_section(section_cls, data: Optional[Dict[str, Any]], **defaults):
        known = {f.name for f in fields(section_cls)}
        values = dict(defaults)
        for key, value in (data or {}).items():
            if key not in known:
                logger.warning(f"Ignoring unknown {section_cls.__name__} setting: {key}")
                continue
            values[key] = value
        return section_cls(**values)

    def _create_config_object(self, config_data: Dict[str, Any]) -> MigratorConfig:
        """Create MigratorConfig object from dictionary"""
        known = {f.name for f in fields(MigratorConfig)}
        for key in config_data:
            if key not in known:
                logger.warning(f"Ignoring unknown configuration setting: {key}")

        source = self._build_section(DatabaseSettings, config_data.get("source_database"),
                                     db_type=DatabaseType.COSMOS_DB)
        target = self._build_section(DatabaseSettings, config_data.get("target_database"))
        for settings in (source, target):
            if not isinstance(settings.db_type, DatabaseType):
                settings.db_type = DatabaseType(settings.db_type)

        return MigratorConfig(
            log_level=str(config_data.get("log_level", "INFO")).upper(),
            source_database=source,
            target_database=target,
            retry=self._build_section(RetrySettings, config_data.get("retry")),
            migration=self._build_section(MigrationSettings, config_data.get("migration"))
        )

    def validate(self, config: MigratorConfig):
        """Validate configuration"""
        errors = []

        for label, settings in (("Source", config.source_database), ("Target", config.target_database)):
            if not settings.connection_string:
                errors.append(f"{label} database connection string is required")
            if not settings.database_name:
                errors.append(f"{label} database name is required")
            if not settings.collection_name:
                errors.append(f"{label} collection name is required")

        if config.migration.batch_size < 1:
            errors.append("Batch size must be >= 1")
        if config.migration.max_concurrency is not None and config.migration.max_concurrency < 1:
            errors.append("Max concurrency must be >= 1")
        if not config.migration.failed_docs_path:
            errors.append("Failed documents path is required")

        if config.retry.insert_retries < 1:
            errors.append("Insert retries must be >= 1")
        if config.retry.min_wait_ms < 0:
            errors.append("Min wait must be >= 0")
        if config.retry.max_wait_ms < config.retry.min_wait_ms:
            errors.append("Max wait must be >= min wait")
        if config.retry.max_fetch_retries is not None and config.retry.max_fetch_retries < 0:
            errors.append("Max fetch retries must be >= 0")
        if not config.retry.throttle_signatures:
            errors.append("At least one throttle signature is required")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

    def get_config(self) -> MigratorConfig:
        """Get current configuration"""
        if self.config is None:
            raise RuntimeError("Configuration not loaded. Call load_config() first.")
        return self.config

    def save_config(self, config: MigratorConfig, file_path: str):
        """Save configuration to file"""
        config_dict = asdict(config)
        config_dict["source_database"]["db_type"] = config.source_database.db_type.value
        config_dict["target_database"]["db_type"] = config.target_database.db_type.value

        file_path_obj = Path(file_path)
        with open(file_path_obj, 'w') as f:
            if file_path_obj.suffix.lower() == '.json':
                json.dump(config_dict, f, indent=2)
            elif file_path_obj.suffix.lower() in ['.yml', '.yaml']:
                yaml.safe_dump(config_dict, f, default_flow_style=False)
            else:
                raise ValueError(f"Unsupported file format: {file_path_obj.suffix}")
