"""
Centralized configuration management for the backup extraction system.

Settings are resolved in layers, later layers winning:

1. ProcessingDefaults
2. SBR_EXTRACTOR_* environment variables
3. An optional JSON or YAML config file
4. Explicit overrides (CLI arguments)

Config file shape (any section or key may be omitted)::

    output:
      output_dir: ./out
      enable_attachments: false
    database:
      connection_string: "DRIVER={ODBC Driver 17 for SQL Server};SERVER=..."
    processing:
      default_region: GB
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..exceptions import ConfigurationError
from .processing_defaults import ProcessingDefaults

ENV_PREFIX = "SBR_EXTRACTOR_"
VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def _env(name: str) -> Optional[str]:
    return os.environ.get(ENV_PREFIX + name)


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    if value is None or value.strip() == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got '{value}'")


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class OutputConfig:
    """Which sinks run and where they write."""
    output_dir: str = ProcessingDefaults.OUTPUT_DIR
    enable_flat_file: bool = True
    enable_relational: bool = True
    enable_attachments: bool = True
    enable_contacts: bool = True
    attachment_dir_name: str = ProcessingDefaults.ATTACHMENT_DIR_NAME
    database_path: str = ProcessingDefaults.DATABASE_FILE_NAME

    @classmethod
    def from_environment(cls) -> 'OutputConfig':
        """Create output configuration from environment variables."""
        return cls(
            output_dir=_env('OUTPUT_DIR') or cls.output_dir,
            enable_flat_file=_env_bool('ENABLE_FLAT_FILE', cls.enable_flat_file),
            enable_relational=_env_bool('ENABLE_RELATIONAL', cls.enable_relational),
            enable_attachments=_env_bool('ENABLE_ATTACHMENTS', cls.enable_attachments),
            enable_contacts=_env_bool('ENABLE_CONTACTS', cls.enable_contacts),
            attachment_dir_name=_env('ATTACHMENT_DIR_NAME') or cls.attachment_dir_name,
            database_path=_env('DATABASE_PATH') or cls.database_path,
        )


@dataclass
class DatabaseConfig:
    """
    Relational target.

    With no connection string the relational sink writes the SQLite file
    ``OutputConfig.database_path``; with one it uses pyodbc and SQL Server.
    """
    connection_string: Optional[str] = None
    connection_timeout: int = ProcessingDefaults.CONNECTION_TIMEOUT
    schema: str = ProcessingDefaults.DB_SCHEMA

    @classmethod
    def from_environment(cls) -> 'DatabaseConfig':
        """Create database configuration from environment variables."""
        return cls(
            connection_string=_env('CONNECTION_STRING') or None,
            connection_timeout=_env_int('DB_CONNECTION_TIMEOUT', cls.connection_timeout),
            schema=_env('DB_SCHEMA') or cls.schema,
        )


@dataclass
class ProcessingParameters:
    """Processing parameters with environment variable support."""
    progress_reporting_interval: int = ProcessingDefaults.PROGRESS_INTERVAL
    default_region: str = ProcessingDefaults.DEFAULT_REGION
    read_chunk_size: int = ProcessingDefaults.READ_CHUNK_SIZE
    repair_entities: bool = ProcessingDefaults.REPAIR_ENTITIES
    flat_file_buffer_size: int = ProcessingDefaults.FLAT_FILE_BUFFER_SIZE
    max_diagnostics_per_category: int = ProcessingDefaults.MAX_DIAGNOSTICS_PER_CATEGORY
    log_level: str = ProcessingDefaults.LOG_LEVEL

    @classmethod
    def from_environment(cls) -> 'ProcessingParameters':
        """Create processing parameters from environment variables."""
        return cls(
            progress_reporting_interval=_env_int('PROGRESS_INTERVAL', cls.progress_reporting_interval),
            default_region=_env('DEFAULT_REGION') or cls.default_region,
            read_chunk_size=_env_int('READ_CHUNK_SIZE', cls.read_chunk_size),
            repair_entities=_env_bool('REPAIR_ENTITIES', cls.repair_entities),
            flat_file_buffer_size=_env_int('FLAT_FILE_BUFFER_SIZE', cls.flat_file_buffer_size),
            max_diagnostics_per_category=_env_int('MAX_DIAGNOSTICS', cls.max_diagnostics_per_category),
            log_level=(_env('LOG_LEVEL') or cls.log_level).upper(),
        )


class ConfigManager:
    """
    Centralized configuration manager serving as single source of truth.

    Attributes:
        output_config: Sink selection and output locations
        database_config: Relational target
        processing_params: Decoder, contact and logging parameters
    """

    _SECTIONS = {
        'output': 'output_config',
        'database': 'database_config',
        'processing': 'processing_params',
    }

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize the configuration manager.

        Args:
            config_file: Optional JSON/YAML file overlaid on the environment

        Raises:
            ConfigurationError: If an environment value or the file is invalid
        """
        self.logger = logging.getLogger(__name__)

        self.output_config = OutputConfig.from_environment()
        self.database_config = DatabaseConfig.from_environment()
        self.processing_params = ProcessingParameters.from_environment()
        self.config_file: Optional[Path] = None

        if config_file is not None:
            self.load_config_file(config_file)

        self.logger.debug(f"ConfigManager initialized: output_dir={self.output_config.output_dir}")

    def load_config_file(self, config_file: Union[str, Path]) -> None:
        """
        Overlay settings from a JSON or YAML file.

        Raises:
            ConfigurationError: If the file is missing, unparseable or has unknown keys
        """
        path = Path(config_file)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as file:
                if path.suffix.lower() in ('.yaml', '.yml'):
                    data = yaml.safe_load(file)
                elif path.suffix.lower() == '.json':
                    data = json.load(file)
                else:
                    raise ConfigurationError(f"Unsupported config file format: {path.suffix}")
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to parse config file {path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to read config file {path}: {e}")

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping of sections")

        self.apply_overrides(data, origin=str(path))
        self.config_file = path
        self.logger.info(f"Loaded configuration from {path}")

    def apply_overrides(self, overrides: Dict[str, Dict[str, Any]], origin: str = "overrides") -> None:
        """
        Overlay section values; None values leave the current setting unchanged.

        Args:
            overrides: {section: {key: value}} with sections output, database, processing
            origin: Where the values came from, for error messages

        Raises:
            ConfigurationError: For unknown sections or keys, or values of the wrong type
        """
        for section_name, values in overrides.items():
            attribute = self._SECTIONS.get(section_name)
            if attribute is None:
                raise ConfigurationError(f"Unknown configuration section '{section_name}' in {origin}")
            if values is None:
                continue
            if not isinstance(values, dict):
                raise ConfigurationError(f"Section '{section_name}' in {origin} must be a mapping")

            section = getattr(self, attribute)
            known = {f.name: f for f in fields(section)}
            for key, value in values.items():
                if key not in known:
                    raise ConfigurationError(f"Unknown setting '{section_name}.{key}' in {origin}")
                if value is None:
                    continue
                setattr(section, key, self._coerce(section_name, key, value, getattr(section, key)))

    def validate_configuration(self) -> bool:
        """
        Validate all configuration settings.

        Returns:
            True if all configurations are valid

        Raises:
            ConfigurationError: If any configuration is invalid
        """
        errors = []
        output = self.output_config
        params = self.processing_params

        if not str(output.output_dir).strip():
            errors.append("Output directory is empty")
        if not any((output.enable_flat_file, output.enable_relational,
                    output.enable_attachments, output.enable_contacts)):
            errors.append("Every output is disabled")
        if output.enable_relational and not (self.database_config.connection_string
                                             or str(output.database_path).strip()):
            errors.append("Relational output needs a database path or connection string")
        if not str(output.attachment_dir_name).strip():
            errors.append("Attachment directory name is empty")

        if self.database_config.connection_timeout <= 0:
            errors.append("Connection timeout must be greater than 0")
        if params.progress_reporting_interval < 0:
            errors.append("Progress reporting interval cannot be negative")
        if params.read_chunk_size <= 0:
            errors.append("Read chunk size must be greater than 0")
        if params.flat_file_buffer_size <= 0:
            errors.append("Flat-file buffer size must be greater than 0")
        if params.max_diagnostics_per_category < 0:
            errors.append("Diagnostics limit cannot be negative")
        if len(params.default_region) != 2 or not params.default_region.isalpha():
            errors.append(f"Default region must be a two-letter region code, got '{params.default_region}'")
        if params.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"Log level must be one of {', '.join(VALID_LOG_LEVELS)}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

        self.logger.debug("Configuration validation passed")
        return True

    @property
    def output_dir(self) -> Path:
        return Path(self.output_config.output_dir)

    @property
    def attachment_dir(self) -> Path:
        return self.output_dir / self.output_config.attachment_dir_name

    @property
    def database_path(self) -> Path:
        """SQLite file; relative paths are resolved under the output directory."""
        path = Path(self.output_config.database_path)
        return path if path.is_absolute() else self.output_dir / path

    def get_configuration_summary(self) -> Dict[str, Any]:
        """
        Get a summary of all configuration settings.

        Returns:
            Dictionary containing configuration summary
        """
        output = self.output_config
        return {
            'output': {
                'output_dir': str(self.output_dir),
                'flat_file': output.enable_flat_file,
                'relational': output.enable_relational,
                'attachments': output.enable_attachments,
                'contacts': output.enable_contacts,
                'attachment_dir': str(self.attachment_dir),
            },
            'database': {
                'target': 'odbc' if self.database_config.connection_string else 'sqlite',
                'database_path': None if self.database_config.connection_string else str(self.database_path),
                'schema': self.database_config.schema,
                'connection_timeout': self.database_config.connection_timeout,
            },
            'processing': {
                'progress_reporting_interval': self.processing_params.progress_reporting_interval,
                'default_region': self.processing_params.default_region,
                'read_chunk_size': self.processing_params.read_chunk_size,
                'repair_entities': self.processing_params.repair_entities,
                'log_level': self.processing_params.log_level,
            },
            'config_file': str(self.config_file) if self.config_file else None,
        }

    def reload_configuration(self) -> None:
        """Reload configuration from environment variables."""
        self.output_config = OutputConfig.from_environment()
        self.database_config = DatabaseConfig.from_environment()
        self.processing_params = ProcessingParameters.from_environment()
        if self.config_file is not None:
            self.load_config_file(self.config_file)
        self.logger.info("Configuration reloaded from environment variables")

    @staticmethod
    def _coerce(section: str, key: str, value: Any, current: Any) -> Any:
        name = f"{section}.{key}"
        if isinstance(current, bool):
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.strip().lower() in ('true', 'false', '1', '0', 'yes', 'no'):
                return value.strip().lower() in ('true', '1', 'yes')
            raise ConfigurationError(f"{name} must be a boolean, got {value!r}")
        if isinstance(current, int):
            try:
                return int(value)
            except (TypeError, ValueError):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        if key == 'log_level':
            return str(value).upper()
        return str(value)


# Global configuration manager instance
_global_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_file: Optional[Union[str, Path]] = None) -> ConfigManager:
    """
    Get the global configuration manager instance.

    Args:
        config_file: Config file to load. Only used on first call.

    Returns:
        Global ConfigManager instance
    """
    global _global_config_manager

    if _global_config_manager is None:
        _global_config_manager = ConfigManager(config_file)

    return _global_config_manager


def reset_config_manager() -> None:
    """Reset the global configuration manager instance."""
    global _global_config_manager
    _global_config_manager = None
