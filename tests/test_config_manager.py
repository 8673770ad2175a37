"""Tests for configuration manager module."""

import json

import pytest

from report_merger.config_manager import DEFAULT_IMAGE_FOLDERS, ConfigManager
from report_merger.utils.exceptions import ConfigurationError
from report_merger.utils.validation import validate_config_structure


class TestConfigManager:
    """Test cases for ConfigManager class."""

    @pytest.fixture
    def manager(self, tmp_path):
        return ConfigManager(str(tmp_path))

    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch):
        for key in (
            "MAX_IMAGE_WIDTH_INCHES",
            "HIGHLIGHT_REPLACED_FIELDS",
            "PDF_RENDER_DPI",
            "PDF_MAX_WIDTH_PX",
            "SHAREPOINT_SITE_URL",
            "SHAREPOINT_REPORTS_BASE_PATH",
            "SHAREPOINT_MASTER_TEMPLATE_PATH",
            "SHAREPOINT_IMAGE_FOLDERS",
            "API_KEY",
            "MAX_FILE_SIZE_MB",
            "DEVELOPMENT_MODE",
        ):
            monkeypatch.delenv(key, raising=False)

    def test_default_config_is_valid(self, manager):
        config = manager.get_default_config()

        validate_config_structure(config)
        assert config["global_settings"]["docx"]["max_image_width_inches"] == 6.5
        assert config["global_settings"]["pdf_rendering"]["jpeg_quality"] == 80
        assert config["global_settings"]["sharepoint"]["image_folders"] == DEFAULT_IMAGE_FOLDERS

    def test_missing_default_config_uses_defaults(self, manager):
        config = manager.load_config()

        assert config["version"] == "1.0"
        assert manager.get_cached_configs() == ["default_config"]

    def test_missing_named_config_raises(self, manager):
        with pytest.raises(ConfigurationError):
            manager.load_config("does_not_exist")

    def test_save_and_load(self, manager, tmp_path):
        config = manager.get_default_config()
        config["global_settings"]["docx"]["figure_style"] = "Figure"

        manager.save_config(config, "custom")
        manager.clear_cache()
        loaded = manager.load_config("custom")

        assert (tmp_path / "custom.json").exists()
        assert loaded["global_settings"]["docx"]["figure_style"] == "Figure"

    def test_invalid_json_raises(self, manager, tmp_path):
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            manager.load_config("broken")

    def test_invalid_structure_raises(self, manager, tmp_path):
        (tmp_path / "noversion.json").write_text(json.dumps({"global_settings": {}}), encoding="utf-8")

        with pytest.raises(ConfigurationError):
            manager.load_config("noversion")

    def test_save_invalid_config_raises(self, manager):
        with pytest.raises(ConfigurationError):
            manager.save_config({"global_settings": {}}, "invalid")

    def test_environment_overrides(self, manager, monkeypatch):
        monkeypatch.setenv("MAX_IMAGE_WIDTH_INCHES", "5.5")
        monkeypatch.setenv("HIGHLIGHT_REPLACED_FIELDS", "true")
        monkeypatch.setenv("PDF_RENDER_DPI", "150")
        monkeypatch.setenv("SHAREPOINT_SITE_URL", "https://contoso.sharepoint.com/sites/Eng")
        monkeypatch.setenv("SHAREPOINT_IMAGE_FOLDERS", "Photos/Raw; Appendix A ;")

        settings = manager.load_config()["global_settings"]

        assert settings["docx"]["max_image_width_inches"] == 5.5
        assert settings["docx"]["highlight_replaced_fields"] is True
        assert settings["pdf_rendering"]["dpi"] == 150
        assert settings["sharepoint"]["site_url"] == "https://contoso.sharepoint.com/sites/Eng"
        assert settings["sharepoint"]["image_folders"] == ["Photos/Raw", "Appendix A"]

    def test_invalid_numeric_override_keeps_value(self, manager, monkeypatch):
        monkeypatch.setenv("PDF_RENDER_DPI", "high")

        assert manager.get_pdf_config()["dpi"] == 300

    def test_section_getters(self, manager):
        assert manager.get_docx_config()["figure_style"] == "Caption"
        assert manager.get_sharepoint_config()["drafts_folder_name"] == "Drafts"

    def test_app_config(self, manager, monkeypatch):
        monkeypatch.setenv("API_KEY", "secret")
        monkeypatch.setenv("MAX_FILE_SIZE_MB", "10")

        app_config = manager.get_app_config()

        assert app_config["api_key"] == "secret"
        assert app_config["max_file_size_mb"] == 10
        assert app_config["development_mode"] is False
        assert app_config["flask_config"]["port"] == 5000

    def test_merge_configs_is_deep(self, manager):
        base = manager.get_default_config()
        override = {"global_settings": {"docx": {"image_dpi": 144}}}

        merged = manager.merge_configs(base, override)

        assert merged["global_settings"]["docx"]["image_dpi"] == 144
        assert merged["global_settings"]["docx"]["figure_style"] == "Caption"
        assert base["global_settings"]["docx"]["image_dpi"] == 96

    def test_validate_runtime_config(self, manager):
        config = manager.get_default_config()
        manager.validate_runtime_config(config)

        config["global_settings"]["sharepoint"]["master_template_path"] = "Templates/master.pdf"
        with pytest.raises(ConfigurationError):
            manager.validate_runtime_config(config)

    def test_validate_runtime_config_empty_drafts(self, manager):
        config = manager.get_default_config()
        config["global_settings"]["sharepoint"]["drafts_folder_name"] = "  "

        with pytest.raises(ConfigurationError):
            manager.validate_runtime_config(config)
