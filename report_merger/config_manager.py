"""Configuration management system with JSON schema validation and environment overrides."""

import json
import os
import copy
from typing import Any, Dict, List
import logging
from dotenv import load_dotenv

from .utils.exceptions import ConfigurationError
from .utils.validation import validate_config_structure

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_FOLDERS = [
    "Photos/Raw",
    "Docs/Engineering Report/H&H/Appendix A - Soil Report",
    "Docs/Engineering Report/H&H/Appendix B - Web Soil Survey",
    "Docs/Engineering Report/H&H/Appendix C - Hydrology",
    "Docs/Engineering Report/H&H/Appendix D - FEMA Documents",
    "Docs/Engineering Report/H&H/Appendix E - Model Output",
]


class ConfigManager:
    """Manages application configuration with validation and environment support."""

    def __init__(self, config_dir: str = "config") -> None:
        """Initialize configuration manager."""
        self.config_dir = config_dir
        self._config_cache: Dict[str, Dict[str, Any]] = {}
        self._load_environment()

    def _load_environment(self) -> None:
        """Load environment variables from .env files."""
        try:
            env_file = os.path.join(os.getcwd(), ".env")
            if os.path.exists(env_file):
                load_dotenv(env_file)
                logger.debug("Loaded environment from .env file")

            env = os.getenv("ENVIRONMENT", "development")
            env_specific_file = os.path.join(self.config_dir, f"{env}.env")

            if os.path.exists(env_specific_file):
                load_dotenv(env_specific_file)
                logger.debug(f"Loaded environment from {env_specific_file}")

        except Exception as e:
            logger.warning(f"Failed to load environment configuration: {e}")

    def get_default_config(self) -> Dict[str, Any]:
        """Get default configuration for template merging and report storage."""
        return {
            "version": "1.0",
            "global_settings": {
                "docx": {
                    "max_image_width_inches": 6.5,
                    "image_dpi": 96,
                    "figure_style": "Caption",
                    "highlight_replaced_fields": False,
                    "missing_value_color": "FF0000",
                },
                "pdf_rendering": {
                    "dpi": 300,
                    "max_width_px": 2200,
                    "jpeg_quality": 80,
                },
                "sharepoint": {
                    "site_url": "",
                    "reports_base_path": "GeneratedReports",
                    "master_template_path": "Templates/Master Template.docx",
                    "drafts_folder_name": "Drafts",
                    "image_folders": list(DEFAULT_IMAGE_FOLDERS),
                    "max_concurrent_downloads": 5,
                },
            },
        }

    def load_config(self, config_name: str = "default_config") -> Dict[str, Any]:
        """Load configuration from file with caching."""
        if config_name in self._config_cache:
            return self._config_cache[config_name]

        try:
            config_file = os.path.join(self.config_dir, f"{config_name}.json")

            if not os.path.exists(config_file):
                if config_name == "default_config":
                    config = self._apply_environment_overrides(self.get_default_config())
                    self._config_cache[config_name] = config
                    return config
                else:
                    raise ConfigurationError(
                        f"Configuration file not found: {config_file}"
                    )

            with open(config_file, "r", encoding="utf-8") as file:
                config = json.load(file)

            validate_config_structure(config)

            config = self._apply_environment_overrides(config)

            self._config_cache[config_name] = config

            logger.info(f"Loaded configuration: {config_name}")
            return config

        except ConfigurationError:
            raise
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Failed to load configuration '{config_name}': {e}"
            )
        except Exception as e:
            raise ConfigurationError(f"Configuration error for '{config_name}': {e}")

    def save_config(self, config: Dict[str, Any], config_name: str) -> None:
        """Save configuration to file."""
        try:
            validate_config_structure(config)

            os.makedirs(self.config_dir, exist_ok=True)

            config_file = os.path.join(self.config_dir, f"{config_name}.json")

            with open(config_file, "w", encoding="utf-8") as file:
                json.dump(config, file, indent=2, ensure_ascii=False)

            self._config_cache[config_name] = config

            logger.info(f"Saved configuration: {config_name}")

        except Exception as e:
            raise ConfigurationError(
                f"Failed to save configuration '{config_name}': {e}"
            )

    def _apply_environment_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        try:
            if "global_settings" in config:
                global_settings = config["global_settings"]

                if "docx" in global_settings:
                    docx_config = global_settings["docx"]

                    docx_config["max_image_width_inches"] = self._get_env_float(
                        "MAX_IMAGE_WIDTH_INCHES",
                        docx_config.get("max_image_width_inches", 6.5),
                    )

                    docx_config["highlight_replaced_fields"] = self._get_env_bool(
                        "HIGHLIGHT_REPLACED_FIELDS",
                        docx_config.get("highlight_replaced_fields", False),
                    )

                if "pdf_rendering" in global_settings:
                    pdf_config = global_settings["pdf_rendering"]

                    pdf_config["dpi"] = self._get_env_int(
                        "PDF_RENDER_DPI", pdf_config.get("dpi", 300)
                    )

                    pdf_config["max_width_px"] = self._get_env_int(
                        "PDF_MAX_WIDTH_PX", pdf_config.get("max_width_px", 2200)
                    )

                if "sharepoint" in global_settings:
                    sharepoint_config = global_settings["sharepoint"]

                    sharepoint_config["site_url"] = self._get_env_str(
                        "SHAREPOINT_SITE_URL", sharepoint_config.get("site_url", "")
                    )

                    sharepoint_config["reports_base_path"] = self._get_env_str(
                        "SHAREPOINT_REPORTS_BASE_PATH",
                        sharepoint_config.get("reports_base_path", "GeneratedReports"),
                    )

                    sharepoint_config["master_template_path"] = self._get_env_str(
                        "SHAREPOINT_MASTER_TEMPLATE_PATH",
                        sharepoint_config.get("master_template_path", ""),
                    )

                    sharepoint_config["image_folders"] = self._get_env_list(
                        "SHAREPOINT_IMAGE_FOLDERS",
                        sharepoint_config.get("image_folders", []),
                        separator=";",
                    )

            return config

        except Exception as e:
            logger.warning(f"Failed to apply environment overrides: {e}")
            return config

    def _get_env_bool(self, key: str, default: bool) -> bool:
        """Get boolean value from environment variable."""
        value = os.getenv(key, str(default)).lower()
        return value in ("true", "1", "yes", "on")

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment variable."""
        try:
            return int(os.getenv(key, str(default)))
        except (ValueError, TypeError):
            return default

    def _get_env_float(self, key: str, default: float) -> float:
        """Get float value from environment variable."""
        try:
            return float(os.getenv(key, str(default)))
        except (ValueError, TypeError):
            return default

    def _get_env_str(self, key: str, default: str) -> str:
        """Get string value from environment variable."""
        return os.getenv(key, default)

    def _get_env_list(
        self, key: str, default: List[str], separator: str = ","
    ) -> List[str]:
        """Get list value from environment variable."""
        value = os.getenv(key)
        if value:
            return [item.strip() for item in value.split(separator) if item.strip()]
        return default

    def get_app_config(self) -> Dict[str, Any]:
        """Get application-wide configuration settings."""
        return {
            "development_mode": self._get_env_bool("DEVELOPMENT_MODE", False),
            "log_level": self._get_env_str("LOG_LEVEL", "INFO"),
            "api_key": self._get_env_str("API_KEY", ""),
            "max_file_size_mb": self._get_env_int("MAX_FILE_SIZE_MB", 50),
            "allowed_extensions": self._get_env_list("ALLOWED_EXTENSIONS", ["docx"]),
            "flask_config": {
                "host": self._get_env_str("FLASK_HOST", "0.0.0.0"),
                "port": self._get_env_int("FLASK_PORT", 5000),
                "debug": self._get_env_bool("FLASK_DEBUG", False),
            },
        }

    def get_docx_config(self) -> Dict[str, Any]:
        """Get specific configuration for Word template processing."""
        return self.load_config().get("global_settings", {}).get("docx", {})

    def get_pdf_config(self) -> Dict[str, Any]:
        """Get specific configuration for PDF page rendering."""
        return self.load_config().get("global_settings", {}).get("pdf_rendering", {})

    def get_sharepoint_config(self) -> Dict[str, Any]:
        """Get specific configuration for SharePoint report storage."""
        return self.load_config().get("global_settings", {}).get("sharepoint", {})

    def merge_configs(
        self, base_config: Dict[str, Any], override_config: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Merge two configurations with override taking precedence."""
        try:
            merged = copy.deepcopy(base_config)

            for key, value in override_config.items():
                if (
                    key in merged
                    and isinstance(merged[key], dict)
                    and isinstance(value, dict)
                ):
                    merged[key] = self.merge_configs(merged[key], value)
                else:
                    merged[key] = value

            return merged

        except Exception as e:
            raise ConfigurationError(f"Failed to merge configurations: {e}")

    def validate_runtime_config(self, config: Dict[str, Any]) -> None:
        """Validate configuration at runtime with additional checks."""
        try:
            validate_config_structure(config)

            sharepoint = config.get("global_settings", {}).get("sharepoint", {})
            drafts = sharepoint.get("drafts_folder_name")
            if drafts is not None and not drafts.strip():
                raise ConfigurationError("Drafts folder name cannot be empty")

            template_path = sharepoint.get("master_template_path")
            if template_path and not template_path.lower().endswith(".docx"):
                raise ConfigurationError(
                    f"Master template must be a .docx file: {template_path}"
                )

        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Runtime configuration validation failed: {e}")

    def clear_cache(self) -> None:
        """Clear configuration cache."""
        self._config_cache.clear()
        logger.debug("Configuration cache cleared")

    def get_cached_configs(self) -> List[str]:
        """Get list of cached configuration names."""
        return list(self._config_cache.keys())
