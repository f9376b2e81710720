"""
Configuration Manager for the osu! miss analyzer acquisition layer

Handles loading, saving, and migrating the JSON config file with version tracking.
API credentials can also come from the environment or a .env file.
"""

import json
import os
import shutil
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from dotenv import load_dotenv

from shared.console import print_success, print_info, print_warning, print_error
from shared.logger import get_log_dir


# Environment variables that override config values
ENV_OVERRIDES = {
    'OSU_API_KEY': 'osu_api.api_key',
    'OSU_CLIENT_ID': 'osu_api.client_id',
    'OSU_CLIENT_SECRET': 'osu_api.client_secret',
}


class ConfigManager:
    """Manages analyzer configuration with version tracking and migrations"""

    CONFIG_VERSION = 2

    def __init__(self, config_path: Optional[Path] = None, env_file: Optional[Path] = None):
        """
        Initialize config manager

        Args:
            config_path: Path to config file (defaults to the platform config dir)
            env_file: .env file with credential overrides (defaults to ./.env)
        """
        if config_path is None:
            config_path = self.get_default_config_path()

        self.config_path = Path(config_path)
        self.env_file = env_file
        self.config: Dict[str, Any] = {}
        # Environment values; read by get() but never saved
        self.overrides: Dict[str, Any] = {}
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def get_default_config_path() -> Path:
        return get_log_dir() / 'analyzer_config.json'

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file, creating default if not exists

        Returns:
            Configuration dictionary
        """
        if not self.config_path.exists():
            print_info(f"[Config] No config file found, creating default at {self.config_path}")
            self.config = self._create_default_config()
            self.save()
        else:
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    self.config = json.load(f)

                current_version = self.config.get('config_version', 1)
                if current_version < self.CONFIG_VERSION:
                    print_warning(f"[Config] Config version {current_version} is outdated, "
                                  f"migrating to {self.CONFIG_VERSION}")
                    self._migrate_config(current_version)
                    self.save()
            except json.JSONDecodeError as e:
                print_error(f"[Config] Failed to parse config file: {e}")
                print_warning("[Config] Creating backup and using default config")
                self._backup_config()
                self.config = self._create_default_config()
                self.save()

        self._apply_env_overrides()
        return self.config

    def save(self):
        """Save configuration to file"""
        self.config['config_version'] = self.CONFIG_VERSION
        self.config['last_updated'] = datetime.now(timezone.utc).isoformat()

        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(self.config, f, indent=2, ensure_ascii=False)

        print_success(f"[Config] Configuration saved to {self.config_path}")

    def _backup_config(self):
        """Create backup of current config file"""
        if not self.config_path.exists():
            return

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        backup_path = self.config_path.parent / f"{self.config_path.stem}_backup_{timestamp}.json"

        try:
            shutil.copy2(self.config_path, backup_path)
            print_info(f"[Config] Backup created: {backup_path}")
        except OSError as e:
            print_warning(f"[Config] Failed to create backup: {e}")

    def _create_default_config(self) -> Dict[str, Any]:
        """Create default configuration"""
        return {
            "config_version": self.CONFIG_VERSION,

            "osu_api": {
                "api_key": "",
                "client_id": "",
                "client_secret": ""
            },

            "paths": {
                "osu_dir": "",
                "songs_dir": "",
                "beatmap_cache_dir": str(get_log_dir() / 'beatmaps')
            },

            "downloads": {
                "max_attempts": None,
                "backoff_base_seconds": 1.0,
                "backoff_max_seconds": 30.0
            },

            "rate_limit": {
                "replay_downloads": 10,
                "window_seconds": 60
            },

            "http": {
                "timeout_seconds": 30
            },

            "logging": {
                "level": "INFO",
                "rotation": {
                    "enabled": True,
                    "max_size_mb": 10,
                    "keep_backups": 5
                }
            }
        }

    def _migrate_config(self, from_version: int):
        """
        Migrate configuration from old version to current

        Args:
            from_version: Version to migrate from
        """
        print_info(f"[Config] Migrating config from v{from_version} to v{self.CONFIG_VERSION}")

        if from_version < 2:
            self._migrate_v1_to_v2()

        print_success("[Config] Migration complete!")

    def _deep_merge_config(self, user_config: dict, default_config: dict) -> dict:
        """
        Deep merge user config with default config, adding missing keys while preserving user values

        Args:
            user_config: User's existing config
            default_config: Default config template

        Returns:
            Merged config with all keys from default but user values where they exist
        """
        merged = default_config.copy()

        for key, value in user_config.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._deep_merge_config(value, merged[key])
            else:
                merged[key] = value

        return merged

    def _migrate_v1_to_v2(self):
        """Move v1's flat keys into the nested sections"""
        flat_keys = {
            'api_key': 'osu_api.api_key',
            'client_id': 'osu_api.client_id',
            'client_secret': 'osu_api.client_secret',
            'osu_dir': 'paths.osu_dir',
        }

        old_values = {}
        for old_key in flat_keys:
            if old_key in self.config:
                old_values[old_key] = self.config.pop(old_key)

        self.config = self._deep_merge_config(self.config, self._create_default_config())

        for old_key, value in old_values.items():
            if value:
                self.set(flat_keys[old_key], value)

    def _apply_env_overrides(self):
        self.overrides = {}
        load_dotenv(self.env_file or Path.cwd() / '.env')
        for env_name, key_path in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                self.overrides[key_path] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get config value by dot-separated path

        Environment overrides win over the file.

        Args:
            key_path: Dot-separated path (e.g., "osu_api.client_id")
            default: Default value if key not found

        Returns:
            Config value or default
        """
        if key_path in self.overrides:
            return self.overrides[key_path]

        value = self.config

        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any):
        """
        Set config value by dot-separated path

        Args:
            key_path: Dot-separated path (e.g., "paths.osu_dir")
            value: Value to set
        """
        keys = key_path.split('.')
        config = self.config

        for key in keys[:-1]:
            if not isinstance(config.get(key), dict):
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

    def songs_dir(self) -> Optional[Path]:
        """Songs folder, defaulting to <osu_dir>/Songs"""
        songs = self.get('paths.songs_dir')
        if songs:
            return Path(songs)
        osu_dir = self.get('paths.osu_dir')
        return Path(osu_dir) / 'Songs' if osu_dir else None
