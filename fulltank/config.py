"""Configuration management for the FullTank service."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

_LOGGER = logging.getLogger(__name__)

# --- Constants ---

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_TIMEZONE = "Australia/Sydney"
DEFAULT_ADAPTER_TIMEOUT = 8  # seconds
DEFAULT_GEOCODE_TIMEOUT = 5  # seconds
DEFAULT_ALERT_INTERVAL = 60  # minutes
DEFAULT_RADIUS_KM = 10.0

DEFAULT_GEOCODE_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_REVERSE_GEOCODE_URL = "https://nominatim.openstreetmap.org/reverse"
DEFAULT_USER_AGENT = "FullTank/1.0 (+https://github.com/fulltank/fulltank)"

# Source name -> environment flag that enables it
SOURCE_ENV_FLAGS = {
    "nsw": "ENABLE_NSW",
    "wa": "ENABLE_WA",
    "qld": "ENABLE_QLD",
    "sa": "ENABLE_SA",
    "vic": "ENABLE_VIC_STUB",
    "fuelprice": "ENABLE_FUELPRICE_FALLBACK",
}

# Source name -> {credential name: environment variable}
SOURCE_CREDENTIALS = {
    "nsw": {"client_id": "NSW_CLIENT_ID", "client_secret": "NSW_CLIENT_SECRET"},
    "wa": {},
    "qld": {"subscriber_token": "QLD_SUBSCRIBER_TOKEN"},
    "sa": {"subscriber_token": "SA_SAFPIS_TOKEN"},
    "vic": {},
    "fuelprice": {"api_key": "FUELPRICE_API_KEY"},
}

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


# --- Logging ---

def setup_logging(log_level: str):
    """Configure logging for the application."""
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


# --- Configuration Loader ---

class Config:
    """Configuration for the FullTank service."""

    def __init__(self, data_dir: Optional[str] = None):
        """Initialize configuration with default values.

        Args:
            data_dir: Directory for the local store and uploads
        """
        self.data_dir = data_dir or os.getenv('DATA_DIR', '.')
        self.store_path: str = os.path.join(self.data_dir, "store.json")
        self.upload_dir: str = os.path.join(self.data_dir, "uploads")

        self.log_level: str = DEFAULT_LOG_LEVEL
        self.timezone: str = DEFAULT_TIMEZONE
        self.adapter_timeout: float = DEFAULT_ADAPTER_TIMEOUT
        self.default_radius_km: float = DEFAULT_RADIUS_KM

        self.geocoding_enabled: bool = True
        self.geocode_url: str = DEFAULT_GEOCODE_URL
        self.reverse_geocode_url: str = DEFAULT_REVERSE_GEOCODE_URL
        self.geocode_timeout: float = DEFAULT_GEOCODE_TIMEOUT
        self.user_agent: str = DEFAULT_USER_AGENT

        self.sources: Dict[str, Dict[str, Any]] = {
            name: {'enabled': False, **{cred: '' for cred in creds}}
            for name, creds in SOURCE_CREDENTIALS.items()
        }

        self.alert_interval: int = DEFAULT_ALERT_INTERVAL
        self.alert_query: Dict[str, str] = {'q': '', 'state': '', 'fuel': ''}

    def source_enabled(self, name: str) -> bool:
        return bool(self.sources.get(name, {}).get('enabled'))

    def credential(self, source: str, name: str) -> str:
        return str(self.sources.get(source, {}).get(name) or '')

    def load_from_file(self, config_path: str) -> bool:
        """
        Load configuration from a YAML file.

        A missing file is not an error: defaults and environment apply.

        Args:
            config_path: Path to the configuration YAML file

        Returns:
            True if successful, False otherwise
        """
        config_file = Path(config_path)
        if not config_file.exists():
            _LOGGER.info("Configuration file not found: %s, using defaults", config_path)
            return True

        try:
            with open(config_file, 'r') as f:
                config_data = yaml.safe_load(f) or {}

            if not isinstance(config_data, dict):
                _LOGGER.error("Configuration file must contain a mapping: %s", config_path)
                return False

            if 'data_dir' in config_data:
                self.data_dir = str(config_data['data_dir'])
                self.store_path = os.path.join(self.data_dir, "store.json")
                self.upload_dir = os.path.join(self.data_dir, "uploads")
            self.store_path = config_data.get('store_path', self.store_path)
            self.upload_dir = config_data.get('upload_dir', self.upload_dir)

            self.log_level = config_data.get('log_level', self.log_level)
            self.timezone = config_data.get('timezone', self.timezone)
            self.adapter_timeout = config_data.get('adapter_timeout', self.adapter_timeout)
            self.default_radius_km = config_data.get('default_radius_km', self.default_radius_km)

            # Geocoding configuration
            if 'geocoding' in config_data:
                geo_config = config_data['geocoding'] or {}
                self.geocoding_enabled = _as_bool(geo_config.get('enabled', self.geocoding_enabled))
                self.geocode_url = geo_config.get('url', self.geocode_url)
                self.reverse_geocode_url = geo_config.get('reverse_url', self.reverse_geocode_url)
                self.geocode_timeout = geo_config.get('timeout', self.geocode_timeout)
                self.user_agent = geo_config.get('user_agent', self.user_agent)

            # Provider sources
            for name, source_config in (config_data.get('sources') or {}).items():
                if name not in self.sources:
                    _LOGGER.warning("Unknown source in configuration: %s", name)
                    continue
                source_config = source_config or {}
                if 'enabled' in source_config:
                    self.sources[name]['enabled'] = _as_bool(source_config['enabled'])
                for cred in SOURCE_CREDENTIALS[name]:
                    if source_config.get(cred):
                        self.sources[name][cred] = str(source_config[cred])

            # Scheduled alert checks
            if 'alert_check' in config_data:
                alert_config = config_data['alert_check'] or {}
                self.alert_interval = alert_config.get('interval', self.alert_interval)
                for key in self.alert_query:
                    if alert_config.get(key):
                        self.alert_query[key] = str(alert_config[key])

            _LOGGER.info("Configuration loaded from %s", config_path)
            return True

        except Exception as exc:
            _LOGGER.error("Failed to load configuration from file: %s", exc)
            return False

    def load_from_env(self):
        """Load configuration from environment variables."""
        load_dotenv(find_dotenv(usecwd=True))

        # Override with environment variables if present
        if os.getenv('LOG_LEVEL'):
            self.log_level = os.getenv('LOG_LEVEL')
        if os.getenv('TIMEZONE'):
            self.timezone = os.getenv('TIMEZONE')
        if os.getenv('STORE_PATH'):
            self.store_path = os.getenv('STORE_PATH')
        if os.getenv('UPLOAD_DIR'):
            self.upload_dir = os.getenv('UPLOAD_DIR')
        if os.getenv('ADAPTER_TIMEOUT'):
            try:
                self.adapter_timeout = float(os.getenv('ADAPTER_TIMEOUT'))
            except ValueError:
                _LOGGER.warning("Invalid ADAPTER_TIMEOUT, using %s", self.adapter_timeout)
        if os.getenv('GEOCODING_ENABLED'):
            self.geocoding_enabled = _as_bool(os.getenv('GEOCODING_ENABLED'))

        for name, flag in SOURCE_ENV_FLAGS.items():
            if os.getenv(flag):
                self.sources[name]['enabled'] = _as_bool(os.getenv(flag))
        for name, creds in SOURCE_CREDENTIALS.items():
            for cred, env_name in creds.items():
                if os.getenv(env_name):
                    self.sources[name][cred] = os.getenv(env_name)

        _LOGGER.debug("Environment variables loaded")

    def integration_status(self) -> Dict[str, bool]:
        """Enabled flag per source, keyed like the environment flags."""
        return {
            'NSW': self.source_enabled('nsw'),
            'WA': self.source_enabled('wa'),
            'QLD': self.source_enabled('qld'),
            'SA': self.source_enabled('sa'),
            'VIC_STUB': self.source_enabled('vic'),
            'FUELPRICE_FALLBACK': self.source_enabled('fuelprice'),
        }

    def validate(self) -> bool:
        """
        Validate the configuration.

        Returns:
            True if configuration is valid, False otherwise
        """
        errors = []

        try:
            if float(self.adapter_timeout) <= 0:
                errors.append("adapter_timeout must be positive")
        except (TypeError, ValueError):
            errors.append("adapter_timeout must be a number")

        try:
            if float(self.geocode_timeout) <= 0:
                errors.append("geocoding timeout must be positive")
        except (TypeError, ValueError):
            errors.append("geocoding timeout must be a number")

        try:
            if int(self.alert_interval) < 1:
                errors.append("alert_check interval must be at least 1 minute")
        except (TypeError, ValueError):
            errors.append("alert_check interval must be an integer")

        if str(self.log_level).upper() not in LOG_LEVELS:
            errors.append(f"Invalid log level: {self.log_level}")

        if not self.store_path:
            errors.append("store_path is required")

        for name, creds in SOURCE_CREDENTIALS.items():
            if not self.source_enabled(name):
                continue
            missing = [cred for cred in creds if not self.credential(name, cred)]
            if missing:
                # The adapter will contribute nothing; not fatal
                _LOGGER.warning(
                    "Source %s is enabled but missing %s",
                    name, ", ".join(missing)
                )

        if errors:
            for error in errors:
                _LOGGER.error("Configuration error: %s", error)
            return False

        _LOGGER.info("Configuration validated successfully")
        return True
