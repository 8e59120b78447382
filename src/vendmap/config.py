# src/vendmap/config.py
import json
import logging
from pathlib import Path
from typing import Any, Dict

from .constants import DEFAULT_CENTER, DEFAULT_SPAN

# Configure logger
logger = logging.getLogger(__name__)

# Config paths
CONFIG_DIR = Path.home() / ".vendmap"
CONFIG_FILE = CONFIG_DIR / "settings.json"

DEFAULT_CONFIG = {
    "data_dir": str(CONFIG_DIR / "data"),
    "actor_id": "",
    "default_latitude": DEFAULT_CENTER[0],
    "default_longitude": DEFAULT_CENTER[1],
    "default_span": DEFAULT_SPAN,
    # Media settings
    "jpeg_quality": 80,
    "thumbnail_size": 200,
    "thumbnail_quality": 70,
    "prefer_image_location": True,
}

# Keys that update_settings() may change; paths and identity go through save_config()
SETTINGS_KEYS = ("jpeg_quality", "thumbnail_size", "thumbnail_quality", "prefer_image_location", "default_span")


class ConfigManager:
    @staticmethod
    def load_config() -> Dict[str, Any]:
        """Load settings from the JSON file, or the defaults when it is missing or unreadable."""
        if not CONFIG_FILE.exists():
            return DEFAULT_CONFIG.copy()

        try:
            with open(CONFIG_FILE, "r", encoding="utf-8") as f:
                data = json.load(f)
                # Merge with defaults to handle new keys
                config = DEFAULT_CONFIG.copy()
                config.update(data)
                return config
        except Exception as e:
            logger.warning(f"Could not load settings: {e}")
            return DEFAULT_CONFIG.copy()

    @staticmethod
    def save_config(data_dir: str = "", actor_id: str = "", **kwargs) -> None:
        """Save the full configuration to the JSON file."""
        # Load existing config first
        current = ConfigManager.load_config()

        # Update with provided values
        if data_dir:
            current["data_dir"] = str(data_dir)
        if actor_id:
            current["actor_id"] = str(actor_id)

        # Update any additional settings
        current.update(kwargs)
        ConfigManager._write(current)

    @staticmethod
    def update_settings(settings: Dict[str, Any]) -> None:
        """Update only media/map settings (not paths or identity)."""
        current = ConfigManager.load_config()
        for key in SETTINGS_KEYS:
            if key in settings:
                current[key] = settings[key]
        ConfigManager._write(current)

    @staticmethod
    def _write(config: Dict[str, Any]) -> None:
        try:
            CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
            with open(CONFIG_FILE, "w", encoding="utf-8") as f:
                json.dump(config, f, indent=4)
        except Exception as e:
            logger.warning(f"Error saving settings: {e}")
