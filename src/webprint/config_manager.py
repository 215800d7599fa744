"""
Configuration Manager
Handles server and agent configuration with automatic defaults
"""

import json
import os
import socket
import uuid
import logging
from pathlib import Path
from typing import Dict, Any

# Environment variable -> config key
ENV_OVERRIDES = {
    "WEBPRINT_SERVER_URL": "server_url",
    "WEBPRINT_AGENT_ID": "agent_id",
    "WEBPRINT_LOG_LEVEL": "log_level",
}

DIRECTORY_KEYS = (
    "upload_directory",
    "preview_directory",
    "temp_directory",
    "download_directory",
    "log_directory",
)


class ConfigManager:
    """Manages service configuration with automatic setup"""

    def __init__(self, config_path: str = None):
        self.logger = logging.getLogger(__name__)

        # Determine configuration path
        if config_path:
            self.config_path = Path(config_path)
        else:
            app_data = os.environ.get('PROGRAMDATA') if os.name == 'nt' else None
            base_dir = Path(app_data) / "WebPrint" if app_data else Path.home() / ".webprint"
            self.config_path = base_dir / "config.json"

        self.config_dir = self.config_path.parent
        self.config_dir.mkdir(parents=True, exist_ok=True)

        # Load or create configuration
        self._load_config()
        self._apply_env_overrides()

        # Create all required directories
        self._create_directories()

    def _create_directories(self):
        """Create all working directories named in the configuration"""
        for key in DIRECTORY_KEYS:
            directory = Path(self.config[key])
            try:
                directory.mkdir(parents=True, exist_ok=True)
                self.logger.debug(f"Directory ensured: {directory}")
            except OSError as e:
                self.logger.error(f"Failed to create directory {directory}: {e}")

    def _load_config(self):
        """Load configuration from file or create default"""
        try:
            if self.config_path.exists():
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    self.config = json.load(f)
                self.logger.info("Configuration loaded successfully")

                # Ensure all required keys exist
                default_config = self._create_default_config()
                added = [key for key in default_config if key not in self.config]
                for key in added:
                    self.config[key] = default_config[key]
                if added:
                    self.logger.info(f"Added missing config keys: {added}")
                    self._save_config()

            else:
                self.config = self._create_default_config()
                self._save_config()
                self.logger.info("Default configuration created")

        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Configuration load error: {e}")
            self.config = self._create_default_config()
            self._save_config()

    def _apply_env_overrides(self):
        for env_var, key in ENV_OVERRIDES.items():
            value = os.environ.get(env_var)
            if value:
                self.config[key] = value
                self.logger.info(f"Config '{key}' overridden by {env_var}")

    def _create_default_config(self) -> Dict[str, Any]:
        """Create default configuration"""
        agent_id = f"{socket.gethostname()}_{str(uuid.uuid4())[:8]}"

        return {
            # Queue server
            "host": "0.0.0.0",
            "port": 5000,
            "api_prefix": "/api",
            "enable_cors": True,
            "agent_offline_after_seconds": 20,
            "pending_ttl_seconds": 0,  # 0 keeps pending jobs forever
            "expiry_sweep_interval": 60,
            "history_limit": 100,
            "convert_images_to_pdf": False,

            # Print agent
            "server_url": "http://localhost:5000",
            "agent_id": agent_id,
            "poll_interval": 5,
            "heartbeat_interval": 5,
            "claim_window_seconds": 60,
            "queue_timeout_seconds": 15,
            "file_timeout_seconds": 60,
            "report_print_errors": False,

            # External tools
            "office_timeout_seconds": 120,
            "image_timeout_seconds": 30,
            "ghostscript_timeout_seconds": 60,
            "print_timeout_seconds": 60,

            # Directories
            "upload_directory": str(self.config_dir / "uploads"),
            "preview_directory": str(self.config_dir / "uploads" / "previews"),
            "temp_directory": str(self.config_dir / "temp"),
            "download_directory": str(self.config_dir / "downloads"),
            "log_directory": str(self.config_dir / "logs"),

            # Logging
            "log_level": "INFO",
        }

    def _save_config(self):
        """Save configuration to file"""
        try:
            # Create backup if config exists
            if self.config_path.exists():
                backup_path = self.config_path.with_suffix('.json.backup')
                self.config_path.replace(backup_path)

            # Save new configuration
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=2, ensure_ascii=False)

            self.logger.debug("Configuration saved successfully")

        except OSError as e:
            self.logger.error(f"Failed to save configuration: {e}")

    def get_config(self) -> Dict[str, Any]:
        """Get current configuration (copy)"""
        return self.config.copy()

    def update_config(self, updates: Dict[str, Any]):
        """Update configuration with new values"""
        self.config.update(updates)
        self._save_config()
        self._create_directories()
        self.logger.info(f"Configuration updated: {list(updates.keys())}")

    def get_server_config(self) -> Dict[str, Any]:
        """Get queue-server configuration"""
        keys = (
            "host", "port", "api_prefix", "enable_cors",
            "agent_offline_after_seconds", "pending_ttl_seconds",
            "expiry_sweep_interval", "history_limit", "convert_images_to_pdf",
            "upload_directory", "preview_directory", "temp_directory",
        )
        return {key: self.config[key] for key in keys} | self.get_tool_config()

    def get_agent_config(self) -> Dict[str, Any]:
        """Get print-agent configuration"""
        keys = (
            "server_url", "agent_id", "api_prefix", "poll_interval",
            "heartbeat_interval", "claim_window_seconds",
            "queue_timeout_seconds", "file_timeout_seconds",
            "report_print_errors", "download_directory",
        )
        return {key: self.config[key] for key in keys} | self.get_tool_config()

    def get_tool_config(self) -> Dict[str, Any]:
        """Get external tool timeouts"""
        return {
            "office_timeout_seconds": self.config["office_timeout_seconds"],
            "image_timeout_seconds": self.config["image_timeout_seconds"],
            "ghostscript_timeout_seconds": self.config["ghostscript_timeout_seconds"],
            "print_timeout_seconds": self.config["print_timeout_seconds"],
        }
