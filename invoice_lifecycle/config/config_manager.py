"""
Configuration manager for the invoice lifecycle service.

Handles storage and retrieval of matching tolerances and the purchase-order
API connection. Credentials are never written to disk: the connector's API
key is read from the environment at load time.
"""

import os
import json
import time
from typing import Any, Dict, Optional
from pathlib import Path

from invoice_lifecycle.models import (
    APIConnectionConfig, AuthenticationType, MatchingSettings,
    ConfigurationError, ValidationError, parse_decimal
)
from .validation import validate_connector_config, validate_matching_settings

import logging
logger = logging.getLogger(__name__)


CONFIG_DIR_ENV = 'INVOICE_LIFECYCLE_CONFIG_DIR'
API_KEY_ENV = 'INVOICE_LIFECYCLE_PO_API_KEY'
DEFAULT_CONFIG_DIR = Path.home() / '.invoice_lifecycle' / 'config'

# Environment variable -> MatchingSettings field
TOLERANCE_ENV_OVERRIDES = {
    'MATCH_TOTAL_TOLERANCE_PCT': 'total_tolerance_percentage',
    'MATCH_TOTAL_TOLERANCE_ABS': 'total_tolerance_absolute',
    'MATCH_RATE_TOLERANCE_ABS': 'rate_tolerance_absolute',
}


class ConfigManager:
    """
    Manages configuration storage and retrieval.

    Tolerances live in settings.json and the connector in connector.json,
    both under one config directory with a backups/ folder beside them.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """
        Args:
            config_dir: Directory holding the configuration files. Defaults to
                $INVOICE_LIFECYCLE_CONFIG_DIR, then ~/.invoice_lifecycle/config.
        """
        self.logger = logging.getLogger(f"{__name__}.ConfigManager")

        self.config_dir = Path(config_dir or os.environ.get(CONFIG_DIR_ENV) or DEFAULT_CONFIG_DIR)
        self.connector_file = self.config_dir / 'connector.json'
        self.settings_file = self.config_dir / 'settings.json'
        self.backup_dir = self.config_dir / 'backups'
        self.backup_dir.mkdir(parents=True, exist_ok=True)

        self.logger.info(f"Using configuration directory {self.config_dir}")

    def _write_json(self, path: Path, data: Dict[str, Any]):
        staging = path.with_suffix(path.suffix + '.tmp')
        with open(staging, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(staging, path)

    @staticmethod
    def _read_json(path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        with open(path, 'r') as f:
            return json.load(f)

    def save_matching_settings(self, settings: MatchingSettings) -> bool:
        """
        Persist tolerance bands.

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            self._write_json(self.settings_file, {**settings.to_dict(), 'updated_at': time.time()})
        except OSError as e:
            self.logger.error(f"Could not write {self.settings_file}: {e}")
            return False
        self.logger.info("Matching tolerances saved")
        return True

    def load_matching_settings(self, apply_env: bool = True) -> MatchingSettings:
        """
        Load tolerance bands.

        A missing, unreadable or invalid file yields the defaults. Environment
        overrides (MATCH_TOTAL_TOLERANCE_PCT, MATCH_TOTAL_TOLERANCE_ABS,
        MATCH_RATE_TOLERANCE_ABS) are applied last.

        Raises:
            ConfigurationError: If an override is not a number or produces
                invalid tolerances
        """
        try:
            stored = self._read_json(self.settings_file)
            settings = MatchingSettings.from_dict(stored)
            if not stored:
                self.logger.info("No stored tolerances, using defaults")
        except (OSError, ValueError, ValidationError) as e:
            self.logger.error(f"Ignoring unreadable {self.settings_file}: {e}")
            settings = MatchingSettings()

        validation = validate_matching_settings(settings)
        if not validation.is_valid:
            self.logger.error(f"Ignoring invalid tolerances in {self.settings_file}: "
                              f"{'; '.join(validation.errors)}")
            settings = MatchingSettings()
        for warning in validation.warnings:
            self.logger.warning(f"Matching tolerances: {warning}")

        if apply_env:
            self._apply_env_overrides(settings)
            validation = validate_matching_settings(settings)
            if not validation.is_valid:
                raise ConfigurationError(
                    f"Tolerance overrides are invalid: {'; '.join(validation.errors)}"
                )
        return settings

    def _apply_env_overrides(self, settings: MatchingSettings):
        for env_name, field_name in TOLERANCE_ENV_OVERRIDES.items():
            raw = (os.environ.get(env_name) or '').strip()
            if not raw:
                continue
            try:
                setattr(settings, field_name, parse_decimal(raw))
            except ValidationError:
                raise ConfigurationError(f"{env_name} must be a number, got {raw!r}")
            self.logger.info(f"{field_name} taken from {env_name}")

    def save_connector_config(self, config: APIConnectionConfig) -> bool:
        """
        Persist the purchase-order API connection without its API key.

        Returns:
            True if saved successfully, False otherwise
        """
        now = time.time()
        try:
            created = self._read_json(self.connector_file).get('created_at', now)
            self._write_json(self.connector_file, {
                **config.to_dict(include_api_key=False), 'created_at': created, 'updated_at': now
            })
        except (OSError, ValueError) as e:
            self.logger.error(f"Could not save connector '{config.connection_id}': {e}")
            return False
        self.logger.info(f"Connector '{config.connection_id}' saved")
        return True

    def load_connector_config(self) -> Optional[APIConnectionConfig]:
        """
        Load the purchase-order API connection; the API key comes from
        $INVOICE_LIFECYCLE_PO_API_KEY.

        Returns:
            Connection configuration, or None when none is configured, the
            stored file is unusable or the configuration fails validation
        """
        try:
            stored = self._read_json(self.connector_file)
            if not stored:
                self.logger.info("No purchase-order API configured")
                return None
            config = APIConnectionConfig(
                connection_id=stored['connection_id'],
                base_url=stored['base_url'],
                api_key=os.environ.get(API_KEY_ENV, ''),
                authentication_type=AuthenticationType(
                    stored.get('authentication_type', AuthenticationType.API_KEY.value)
                ),
                timeout=int(stored.get('timeout', 30)),
                rate_limit=int(stored.get('rate_limit', 100)),
                additional_headers=stored.get('additional_headers') or {}
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.error(f"Ignoring unusable {self.connector_file}: {e}")
            return None

        validation = validate_connector_config(config)
        for warning in validation.warnings:
            self.logger.warning(f"Connector '{config.connection_id}': {warning}")
        if not validation.is_valid:
            self.logger.error(f"Connector '{config.connection_id}' is not usable: "
                              f"{'; '.join(validation.errors)}")
            return None
        return config

    def create_backup(self, backup_name: Optional[str] = None) -> str:
        """
        Snapshot both configuration files into backups/<name>.json.

        Returns:
            Path to the backup file

        Raises:
            ConfigurationError: If the backup cannot be written
        """
        backup_file = self.backup_dir / f"{backup_name or f'backup_{int(time.time())}'}.json"
        try:
            self._write_json(backup_file, {
                'created_at': time.time(),
                'connector': self._read_json(self.connector_file),
                'settings': self._read_json(self.settings_file)
            })
        except (OSError, ValueError) as e:
            self.logger.error(f"Backup {backup_file} failed: {e}")
            raise ConfigurationError(f"Backup creation failed: {e}")
        self.logger.info(f"Configuration backed up to {backup_file}")
        return str(backup_file)

    def get_config_info(self) -> Dict[str, Any]:
        return {
            'config_directory': str(self.config_dir),
            'connector_file_exists': self.connector_file.exists(),
            'settings_file_exists': self.settings_file.exists(),
            'backup_directory': str(self.backup_dir),
            'backup_count': sum(1 for _ in self.backup_dir.glob('*.json'))
        }


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Process-wide ConfigManager, created on first use."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
