"""
Unified Configuration System for Forest Data Acquisition

This module provides centralized configuration management with clear hierarchy:
1. Built-in defaults (lowest priority)
2. Configuration files (YAML/JSON)
3. Environment variables
4. Explicit overrides (highest priority)

Provider endpoints, defaults and transport settings all live here so that
adapters never hard-code them.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

from .logging_utils import setup_forest_data_logging


class ForestDataConfig:
    """
    Unified configuration for the acquisition pipelines.

    Provides centralized configuration management with clear hierarchy:
    1. Built-in defaults
    2. Configuration files (YAML/JSON)
    3. Environment variables
    4. Explicit overrides (highest priority)
    """

    def __init__(self, config_file: Optional[str] = None, overrides: Optional[Dict] = None):
        """
        Initialize configuration system with proper precedence order.

        Args:
            config_file: Path to YAML or JSON configuration file
            overrides: Dictionary of explicit overrides (highest priority)
        """
        self.config_file = config_file
        self.overrides = overrides or {}
        self._config = {}
        self._load_configuration()

    def _load_configuration(self):
        """Load configuration with proper precedence order"""
        self._config = self._get_default_config()

        if self.config_file:
            file_config = self._load_config_file(self.config_file)
            self._merge_config(self._config, file_config)

        env_config = self._load_environment_config()
        self._merge_config(self._config, env_config)

        if self.overrides:
            self._merge_config(self._config, self.overrides)

        self._validate_configuration()

    def _get_default_config(self) -> Dict[str, Any]:
        """Built-in default configuration"""
        return {
            'processing': {
                'download_directory': './DATA/',
                'log_level': 'INFO',
                'log_file': None,
            },
            'transport': {
                'timeout_seconds': 600,  # climate archives are large
                'chunk_size': 8192,
                'user_agent': 'forest-data/1.0',
            },
            'providers': {
                'cru': {
                    'base_url': 'https://crudata.uea.ac.uk/cru/data/hrg/',
                    'version': '4.08',
                    'release_id': '2406270035',
                    'start_year': 1901,
                    'end_year': 2023,
                    'variables': ['cld', 'dtr', 'frs', 'pet', 'pre',
                                  'tmn', 'tmp', 'tmx', 'vap', 'wet'],
                },
                'gbif': {
                    'api_url': 'https://api.gbif.org/v1/',
                    'limit': 10000,
                    'page_size': 300,  # GBIF maximum per page
                    'forest_only': True,
                    'forest_keywords': ['forest', 'woodland', 'woods', 'silv', 'timberland'],
                },
                'modis': {
                    'api_url': 'https://modis.ornl.gov/rst/api/v1/',
                    'product': 'MOD13Q1',
                    'band': '250m_16_days_EVI',
                    'start_date': '2000-01-01',
                    'km_above_below': 1,
                    'km_left_right': 1,
                    'dates_per_request': 10,
                    'rescale_threshold': 1000,
                    'scale_divisor': 10000,
                },
                'fao': {
                    'bulk_url': ('https://fenixservices.fao.org/faostat/static/'
                                 'bulkdownloads/Forestry_E_All_Data.zip'),
                    'encoding': 'latin-1',
                    'csv_suffix': '.csv',
                },
                'effis': {
                    'date_format': '%Y-%m-%d %H:%M:%S',
                },
            },
        }

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file"""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            if config_path.suffix.lower() in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif config_path.suffix.lower() == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {config_path.suffix}")

    def _load_environment_config(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        env_config = {}

        env_mappings = {
            'FOREST_DATA_DOWNLOAD_DIR': 'processing.download_directory',
            'FOREST_DATA_LOG_LEVEL': 'processing.log_level',
            'FOREST_DATA_LOG_FILE': 'processing.log_file',
            'FOREST_DATA_TIMEOUT': 'transport.timeout_seconds',
            'GBIF_API_URL': 'providers.gbif.api_url',
            'MODIS_API_URL': 'providers.modis.api_url',
        }

        for env_var, config_path in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                self._set_nested_config(env_config, config_path, value)

        return env_config

    def _set_nested_config(self, config_dict: Dict, path: str, value: Any):
        """Set nested configuration value using dot notation path"""
        keys = path.split('.')
        current = config_dict

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        # Convert string values to appropriate types
        if isinstance(value, str):
            if value.lower() in ['true', 'false']:
                value = value.lower() == 'true'
            elif value.isdigit():
                value = int(value)
            elif value.replace('.', '', 1).isdigit():
                value = float(value)

        current[keys[-1]] = value

    def _merge_config(self, base_config: Dict, override_config: Dict):
        """Deep merge configuration dictionaries"""
        for key, value in override_config.items():
            if key in base_config and isinstance(base_config[key], dict) and isinstance(value, dict):
                self._merge_config(base_config[key], value)
            else:
                base_config[key] = value

    def _validate_configuration(self):
        """Validate final configuration"""
        for section in ['processing', 'transport', 'providers']:
            if section not in self._config:
                raise ValueError(f"Required configuration section missing: {section}")

        processing = self._config['processing']
        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if str(processing.get('log_level', 'INFO')).upper() not in valid_log_levels:
            raise ValueError(f"log_level must be one of: {valid_log_levels}")

        transport = self._config['transport']
        if transport.get('timeout_seconds', 0) <= 0:
            raise ValueError("transport timeout_seconds must be positive")
        if transport.get('chunk_size', 0) <= 0:
            raise ValueError("transport chunk_size must be positive")

        providers = self._config['providers']

        gbif = providers.get('gbif', {})
        if not 0 < gbif.get('page_size', 300) <= 300:
            raise ValueError("GBIF page_size must be between 1 and 300")
        if gbif.get('limit', 1) <= 0:
            raise ValueError("GBIF limit must be positive")

        modis = providers.get('modis', {})
        if modis.get('dates_per_request', 1) <= 0:
            raise ValueError("MODIS dates_per_request must be positive")

        cru = providers.get('cru', {})
        if cru.get('start_year', 0) > cru.get('end_year', 0):
            raise ValueError("CRU start_year must be <= end_year")

    # Public interface methods
    def get(self, path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation path.

        Args:
            path: Dot-separated path to configuration value (e.g., 'providers.cru.version')
            default: Default value if path not found

        Returns:
            Configuration value or default if not found
        """
        keys = path.split('.')
        current = self._config

        try:
            for key in keys:
                current = current[key]
            return current
        except (KeyError, TypeError):
            return default

    def get_processing_config(self) -> Dict[str, Any]:
        """Get processing-specific configuration"""
        return self._config['processing']

    def get_transport_config(self) -> Dict[str, Any]:
        """Get transport configuration"""
        return self._config['transport']

    def get_provider_config(self, provider_name: str) -> Dict[str, Any]:
        """
        Get configuration for a specific provider.

        Args:
            provider_name: Provider name ('cru', 'gbif', 'modis', 'fao', 'effis'), any case

        Returns:
            Provider-specific configuration dictionary (empty if unknown)
        """
        return self._config['providers'].get(str(provider_name).lower(), {})

    def setup_logging(self, console_output: bool = True) -> logging.Logger:
        """
        Configure the package logger from ``processing.log_level`` and
        ``processing.log_file`` (FOREST_DATA_LOG_LEVEL / FOREST_DATA_LOG_FILE).
        """
        processing = self.get_processing_config()
        return setup_forest_data_logging(processing.get('log_level', 'INFO'),
                                         log_file=processing.get('log_file'),
                                         console_output=console_output)

    def to_dict(self) -> Dict[str, Any]:
        """Return complete configuration as dictionary"""
        return copy.deepcopy(self._config)

    def save_config(self, output_path: str):
        """
        Save current configuration to file.

        Args:
            output_path: Path where to save configuration file
        """
        output_path = Path(output_path)

        if output_path.suffix.lower() in ['.yaml', '.yml']:
            with open(output_path, 'w') as f:
                yaml.dump(self._config, f, default_flow_style=False, indent=2)
        elif output_path.suffix.lower() == '.json':
            with open(output_path, 'w') as f:
                json.dump(self._config, f, indent=2)
        else:
            raise ValueError(f"Unsupported output format: {output_path.suffix}")
