"""
Configuration Manager for the Pairwise Sorter

This module provides configuration management including:
- JSON-based configuration merged over built-in defaults
- Version migration of older configuration files
- Validation of numeric and choice settings
- Backup of the previous file on every save

Version: 1.1 (Added save_format_version)
"""

import os
import json
import shutil
import glob
from datetime import datetime
import logging


class ConfigManager:
    """
    Configuration manager for the sorter.

    Manages:
    - Catalog and image locations
    - Save store location and sorter URL used for save slots and share links
    - Preloading and export preferences

    Configuration is stored in JSON format with automatic backup.
    """

    CURRENT_VERSION = "1.1"

    def __init__(self, config_file='sorter_config.json'):
        self.config_file = config_file
        self.logger = logging.getLogger(__name__)

        self.default_config = {
            'config_version': self.CURRENT_VERSION,
            'catalog_dir': 'data/catalogs',
            'image_root': 'data/images',
            'store_file': 'data/sorter_saves.db',
            'sorter_url': 'localhost/sorter',
            'url_scheme': 'http',
            'mode': 'ERP',
            'max_image_size': 700,
            'preload_images': True,
            'preload_workers': 4,
            'save_format_version': 1,
            'autosave': True,
            'export_dir': 'exports',
            'log_level': 'INFO'
        }

        self.config = self.load_config()

    def load_config(self):
        """Load configuration with version migration."""
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r') as f:
                    loaded_config = json.load(f)

                config_version = loaded_config.get('config_version', '1.0')
                if config_version != self.CURRENT_VERSION:
                    loaded_config = self.migrate_config(loaded_config, config_version)

                # Merge with defaults to ensure all keys exist
                config = self.default_config.copy()
                config.update(loaded_config)
                return self.validate_config(config)

            except (json.JSONDecodeError, FileNotFoundError) as e:
                self.logger.error(f"Error loading JSON config: {e}")

        return self.default_config.copy()

    def migrate_config(self, old_config, from_version):
        """Migrate configuration from older versions."""
        if from_version == '1.0':
            # 1.0 stored saves in a JSON file next to the config
            store_file = old_config.get('store_file', '')
            if store_file.endswith('.json'):
                old_config['store_file'] = store_file[:-len('.json')] + '.db'
            old_config.setdefault('save_format_version', 1)

        old_config['config_version'] = self.CURRENT_VERSION
        self.logger.info(f"Migrated config from version {from_version} to {self.CURRENT_VERSION}")
        return old_config

    def validate_config(self, config):
        """Replace invalid values with defaults."""
        for key in ('max_image_size', 'preload_workers'):
            value = config.get(key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                self.logger.warning(f"Invalid {key} {value!r}, using default")
                config[key] = self.default_config[key]

        if config.get('save_format_version') not in (1, 2):
            self.logger.warning(f"Invalid save_format_version {config.get('save_format_version')!r}, using default")
            config['save_format_version'] = self.default_config['save_format_version']

        if str(config.get('log_level', '')).upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            config['log_level'] = self.default_config['log_level']

        return config

    def get(self, key, default=None):
        return self.config.get(key, self.default_config.get(key, default))

    def set(self, key, value):
        self.config[key] = value

    def save_config(self):
        """Save configuration with automatic backup."""
        try:
            if os.path.exists(self.config_file):
                self.backup_config()

            self.config['config_version'] = self.CURRENT_VERSION
            self.config['last_saved'] = datetime.now().isoformat()

            with open(self.config_file, 'w') as f:
                json.dump(self.config, f, indent=2)

        except Exception as e:
            self.logger.error(f"Error saving config: {e}")
            raise

    def backup_config(self):
        """Create a backup of the current configuration."""
        try:
            backup_dir = os.path.join(os.path.dirname(self.config_file), 'backups')
            os.makedirs(backup_dir, exist_ok=True)

            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
            backup_file = os.path.join(backup_dir, f'config_backup_{timestamp}.json')

            shutil.copy2(self.config_file, backup_file)

            # Clean old backups (keep last 10)
            backup_files = sorted(glob.glob(os.path.join(backup_dir, 'config_backup_*.json')))
            if len(backup_files) > 10:
                for old_backup in backup_files[:-10]:
                    os.remove(old_backup)

        except Exception as e:
            self.logger.error(f"Error creating config backup: {e}")

    def get_share_base(self):
        """Scheme, host and path that share links are built on."""
        return f"{self.get('url_scheme')}://{self.get('sorter_url')}"
