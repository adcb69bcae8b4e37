"""Configuration management components."""

from .config_manager import (
    ConfigManager, OutputConfig, DatabaseConfig, ProcessingParameters,
    get_config_manager, reset_config_manager
)
from .processing_defaults import ProcessingDefaults

__all__ = [
    'ConfigManager',
    'OutputConfig',
    'DatabaseConfig',
    'ProcessingParameters',
    'ProcessingDefaults',
    'get_config_manager',
    'reset_config_manager',
]
