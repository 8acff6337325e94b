"""
Unit tests for workspace configuration.
"""

import pytest
from pydantic import ValidationError

from sfca_lsp.config import ApexGuruSettings, SeveritySettings, Settings, config_path_for, load_settings


def _write_config(root, text: str) -> None:
    path = config_path_for(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


class TestLoadSettings:
    """Test reading .sfca/config.yaml."""

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path)

        assert settings == Settings()
        assert settings.scanner.command == "sf"
        assert settings.analysis.analyze_on_save is True
        assert settings.analysis.analyze_on_open is False

    def test_values_are_read(self, tmp_path):
        _write_config(
            tmp_path,
            "scanner:\n"
            "  rule_selector: Recommended\n"
            "severity:\n"
            "  error_max: 1\n"
            "  warning_max: 3\n"
            "apex_guru:\n"
            "  enabled: true\n"
            "  instance_url: https://example.my.salesforce.com\n"
            "log_level: DEBUG\n",
        )

        settings = load_settings(tmp_path)

        assert settings.scanner.rule_selector == "Recommended"
        assert settings.severity.error_max == 1
        assert settings.severity.warning_max == 3
        assert settings.apex_guru.enabled is True
        assert settings.log_level == "DEBUG"

    def test_telemetry_id_is_left_to_the_client(self, tmp_path):
        """The telemetry client reads distinct_id itself; settings accept it untouched."""
        _write_config(tmp_path, "telemetry:\n  enabled: true\n  distinct_id: user_123\n")

        settings = load_settings(tmp_path)

        assert settings.telemetry.enabled is True
        assert "distinct_id" not in settings.telemetry.model_dump()

    @pytest.mark.parametrize(
        "text",
        [
            "scanner: [unclosed",
            "- just\n- a list\n",
            "severity:\n  error_max: 4\n  warning_max: 2\n",
            "severity:\n  error_max: 9\n",
        ],
    )
    def test_invalid_file_gives_defaults(self, tmp_path, text):
        _write_config(tmp_path, text)
        assert load_settings(tmp_path) == Settings()

    def test_empty_file_gives_defaults(self, tmp_path):
        _write_config(tmp_path, "")
        assert load_settings(tmp_path) == Settings()


class TestSettingsModels:
    """Test model-level validation."""

    def test_severity_thresholds_must_be_ordered(self):
        with pytest.raises(ValidationError, match="warning_max"):
            SeveritySettings(error_max=3, warning_max=2)

    def test_access_token_comes_from_environment(self, monkeypatch):
        monkeypatch.setenv("MY_ORG_TOKEN", "00Dxx")
        assert ApexGuruSettings(access_token_env="MY_ORG_TOKEN").access_token == "00Dxx"

        monkeypatch.setenv("MY_ORG_TOKEN", "")
        assert ApexGuruSettings(access_token_env="MY_ORG_TOKEN").access_token is None

    def test_config_path(self, tmp_path):
        assert config_path_for(tmp_path) == tmp_path / ".sfca" / "config.yaml"
