"""Configuration management for Microsoft Graph API."""

import os
import logging
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = ["config/graph_api.env", "graph_api.env", ".env"]


class GraphAPIConfig:
    """Configuration manager for Graph API credentials and settings."""

    def __init__(self, config_file: Optional[str] = None):
        """Initialize Graph API configuration.

        Args:
            config_file: Path to environment file with Graph API credentials
        """
        self.config_file = config_file
        self._credentials: Dict[str, str] = {}
        self._settings: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from an environment file, then from environment variables."""
        if self.config_file and os.path.exists(self.config_file):
            self._load_from_file()
        else:
            for path in DEFAULT_CONFIG_PATHS:
                if os.path.exists(path):
                    self.config_file = path
                    self._load_from_file()
                    break
            else:
                logger.debug("📁 No Graph API config file found in default locations")

        self._load_from_env()

    def _load_from_file(self) -> None:
        # Values already present in the environment take precedence
        try:
            load_dotenv(self.config_file, override=False)
            logger.info(f"Loaded Graph API configuration from: {self.config_file}")
        except Exception as e:
            logger.warning(
                f"Failed to load Graph API config file {self.config_file}: {e}"
            )

    def _load_from_env(self) -> None:
        """Load credentials and client settings from environment variables."""
        self._credentials = {
            "client_id": os.getenv("GRAPH_CLIENT_ID", ""),
            "client_secret": os.getenv("GRAPH_CLIENT_SECRET", ""),
            "tenant_id": os.getenv("GRAPH_TENANT_ID", ""),
        }

        configured = len([k for k, v in self._credentials.items() if v])
        logger.debug(f"🔑 Graph API credentials loaded from environment: {configured} of 3 set")

        self._settings = {
            "timeout": self._env_int("GRAPH_API_TIMEOUT", 60),
            "retry_attempts": self._env_int("GRAPH_API_RETRY_ATTEMPTS", 3),
            "retry_delay": self._env_int("GRAPH_API_RETRY_DELAY", 2),
        }

    @staticmethod
    def _env_int(key: str, default: int) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            logger.warning(f"Invalid integer for {key}, using {default}")
            return default

    def get_credentials(self) -> Dict[str, str]:
        """Get Graph API credentials."""
        return self._credentials.copy()

    def get_settings(self) -> Dict[str, Any]:
        """Get Graph API settings."""
        return self._settings.copy()

    def is_configured(self) -> bool:
        """Check if all Graph API credentials are present."""
        missing = [key for key, value in self._credentials.items() if not value]
        if missing:
            logger.error(f"❌ Graph API is not configured - missing {missing}")
            return False
        return True

    def validate_config(self) -> Tuple[bool, List[str]]:
        """Validate configuration and return any errors."""
        errors = []

        for cred in ["client_id", "client_secret", "tenant_id"]:
            if not self._credentials.get(cred):
                errors.append(f"Missing required credential: {cred}")

        if self._settings.get("timeout", 0) <= 0:
            errors.append("Timeout must be positive")

        if self._settings.get("retry_attempts", 0) < 0:
            errors.append("Retry attempts must be non-negative")

        return len(errors) == 0, errors

    def get_config_summary(self) -> str:
        """Get a summary of the current configuration."""
        is_valid, errors = self.validate_config()
        status = "✓ Valid" if is_valid else "✗ Invalid"

        summary = f"""Graph API Configuration Summary:
Status: {status}
Config File: {self.config_file or 'None (using environment variables)'}
Client ID: {'Set' if self._credentials.get('client_id') else 'Missing'}
Client Secret: {'Set' if self._credentials.get('client_secret') else 'Missing'}
Tenant ID: {'Set' if self._credentials.get('tenant_id') else 'Missing'}
Settings: {self._settings}"""

        if errors:
            summary += f"\nErrors: {errors}"

        return summary


def load_graph_api_config(config_file: Optional[str] = None) -> GraphAPIConfig:
    """Load Graph API configuration from file or environment."""
    return GraphAPIConfig(config_file)


def get_graph_api_credentials(
    tenant_id: Optional[str] = None,
) -> Optional[Dict[str, str]]:
    """Get Graph API credentials if available.

    Args:
        tenant_id: Optional tenant ID from configuration to override environment variable
    """
    config = load_graph_api_config()

    if not config.is_configured():
        logger.error(f"❌ Graph API credentials unavailable:\n{config.get_config_summary()}")
        return None

    credentials = config.get_credentials()
    if tenant_id:
        credentials["tenant_id"] = tenant_id
        logger.info(f"🔄 Using tenant_id from configuration: {tenant_id[:8]}...")

    return credentials
