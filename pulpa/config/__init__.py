"""YAML configuration loader for pulpa."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "audio": {
        "sample_rate": 16000,
        "channels": 1,
        "frames_per_buffer": 1024,
        "time_slice_ms": 500,
        "fft_size": 256,
        "smoothing_time_constant": 0.8,
        "min_decibels": -100.0,
        "max_decibels": -30.0,
        "noise_suppression": True,
        "noise_reduction": 0.9,
    },
    "detection": {
        "silence_threshold": 0.025,
        "silence_duration_ms": 4000,
        "max_turn_duration_ms": 50000,
        "speech_confirm_samples": 3,
        "frame_interval_ms": 16,
        "duration_tick_ms": 100,
    },
    "timing": {
        "capture_error_reset_ms": 2000,
        "nothing_heard_reset_ms": 2000,
        "pipeline_error_reset_ms": 4000,
        "resume_delay_ms": 100,
        "finish_status_reset_ms": 2500,
    },
    "backend": {
        "url": "",
        "anon_key": "",
        "access_token": "",
        "user_id": "",
        "request_timeout_s": None,
    },
    "transcription": {
        "backend": "service",
        "status_poll_interval_s": 1.0,
        "status_poll_attempts": 60,
    },
    "google_cloud": {
        "use_enhanced_model": True,
        "enable_automatic_punctuation": True,
    },
    "profile": {},
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/pulpa.log",
        "console_output": True,
    },
}

ENV_OVERRIDES = {
    "PULPA_BACKEND_URL": "backend.url",
    "PULPA_ANON_KEY": "backend.anon_key",
    "PULPA_ACCESS_TOKEN": "backend.access_token",
    "PULPA_USER_ID": "backend.user_id",
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class PulpaConfig:
    """pulpa configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used.
        """
        self.config_file: Optional[Path] = Path(config_path) if config_path else None

        if self.config_file is not None and not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        if self.config_file is not None:
            logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()
        self._apply_env_overrides()

    @classmethod
    def from_dict(cls, overrides: Dict[str, Any]) -> "PulpaConfig":
        """Build a configuration from a dict merged over the defaults."""
        config = cls()
        config.config = _deep_merge(config.config, overrides)
        return config

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        if self.config_file is None:
            return copy.deepcopy(DEFAULT_CONFIG)

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")

        config = _deep_merge(DEFAULT_CONFIG, config)
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        google = config.get('google_cloud', {})
        if google.get('credentials_path') and not os.path.isabs(google['credentials_path']):
            google['credentials_path'] = str(config_dir / google['credentials_path'])

        log_path = config.get('logging', {}).get('file_path')
        if log_path and not os.path.isabs(log_path):
            config['logging']['file_path'] = str(config_dir / log_path)

    def _apply_env_overrides(self) -> None:
        for env_name, key_path in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                self.set(key_path, value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'detection.silence_threshold').

        Args:
            key_path: Dot-separated key path
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
            key_path: Dot-separated path to config value (e.g., 'backend.url')
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

    def get_google_credentials_path(self) -> str:
        """Get Google credentials path - raises if not found."""
        creds_path = self.get('google_cloud.credentials_path')
        if not creds_path:
            raise ValueError("Google credentials path not configured")

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise FileNotFoundError(f"Google credentials file not found: {creds_path}")

        return str(creds_file.absolute())
