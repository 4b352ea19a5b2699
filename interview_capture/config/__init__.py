"""Simple YAML configuration loader for interview_capture."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


class CaptureAppConfig:
    """Application configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. Required; a missing file is an error.
        """
        if not config_path:
            raise ValueError("Configuration path is required")
        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except OSError as e:
            raise ValueError(f"Failed to load configuration: {e}")

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")

        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        if 'logging' in config and 'file_path' in config['logging']:
            log_path = config['logging']['file_path']
            if not os.path.isabs(log_path):
                config['logging']['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'stt.language').

        Args:
            key_path: Dot-separated key path (e.g., 'audio.bridge_capacity')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'stt.model')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def capture_options(self) -> Dict[str, Any]:
        """Map the stt/analysis sections to CaptureConfig.from_options keys.

        Environment variables STT_AUTH_TOKEN and INTERNAL_API_KEY override the
        file so secrets can stay out of it.
        """
        return {
            "authToken": os.environ.get("STT_AUTH_TOKEN") or self.get('stt.auth_token'),
            "sttProxyUrl": self.get('stt.proxy_url'),
            "language": self.get('stt.language'),
            "provider": self.get('stt.provider'),
            "model": self.get('stt.model'),
            "supabaseUrl": self.get('analysis.url'),
            "supabaseAnonKey": self.get('analysis.anon_key'),
            "internalApiKey": os.environ.get("INTERNAL_API_KEY") or self.get('analysis.internal_key'),
        }

    def get_bridge_capacity(self) -> int:
        capacity = int(self.get('audio.bridge_capacity', 200))
        if capacity < 1:
            raise ValueError(f"audio.bridge_capacity must be positive, got {capacity}")
        return capacity

    def get_poll_interval(self) -> float:
        """Capture thread poll interval in seconds."""
        return float(self.get('audio.poll_interval_ms', 50)) / 1000.0
