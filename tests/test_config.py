"""Tests for settings loading."""

from __future__ import annotations

from jobmatch.config import DEFAULT_LOCATIONS, load_settings


class TestLoadSettings:
    """Test suite for YAML + environment settings."""

    def test_defaults_without_file(self, tmp_path) -> None:
        settings = load_settings(str(tmp_path / "missing.yaml"), environ={})
        assert settings.top_n == 10
        assert settings.linkedin_enabled is False
        assert settings.linkedin_threshold == 20
        assert settings.default_locations == DEFAULT_LOCATIONS
        assert settings.weights.semantic == 0.5

    def test_yaml_values(self, tmp_path) -> None:
        path = tmp_path / "matcher.yaml"
        path.write_text(
            "top_n: 5\nlinkedin_enabled: true\nweights:\n  semantic: 0.7\n  location: 0.0\n",
            encoding="utf-8",
        )
        settings = load_settings(str(path), environ={})
        assert settings.top_n == 5
        assert settings.linkedin_enabled is True
        assert settings.weights.semantic == 0.7
        assert settings.weights.location == 0.0
        assert settings.weights.skill == 0.2

    def test_env_overrides_yaml(self, tmp_path) -> None:
        path = tmp_path / "matcher.yaml"
        path.write_text("top_n: 5\nsmtp_port: 25\n", encoding="utf-8")
        settings = load_settings(
            str(path),
            environ={
                "TOP_N": "3",
                "SMTP_PORT": "2525",
                "LINKEDIN_ENABLED": "yes",
                "RAPIDAPI_KEY": "secret",
                "SCORE_WEIGHT_RECENCY": "0.4",
            },
        )
        assert settings.top_n == 3
        assert settings.smtp_port == 2525
        assert settings.linkedin_enabled is True
        assert settings.rapidapi_key == "secret"
        assert settings.weights.recency == 0.4

    def test_invalid_env_values_ignored(self, tmp_path) -> None:
        settings = load_settings(
            str(tmp_path / "missing.yaml"),
            environ={"TOP_N": "ten", "SCORE_WEIGHT_SKILL": "high", "SMTP_HOST": "  "},
        )
        assert settings.top_n == 10
        assert settings.weights.skill == 0.2
        assert settings.smtp_host == "smtp-relay.brevo.com"

    def test_empty_yaml(self, tmp_path) -> None:
        path = tmp_path / "matcher.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(str(path), environ={}).top_n == 10
