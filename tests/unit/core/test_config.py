"""Unit tests for engine settings."""

import pytest
from pydantic import ValidationError

from estimator.core.config import Settings, get_settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        """Test default limits."""
        monkeypatch.delenv("ESTIMATOR_MAX_FUNCTION_EXPANSION_DEPTH", raising=False)
        settings = Settings(_env_file=None)
        assert settings.max_function_expansion_depth == 16
        assert settings.max_expansion_nodes == 10_000
        assert settings.computed_output_precision == 2
        assert settings.preview_enabled is True

    def test_environment_variables(self, monkeypatch):
        """Test loading from prefixed environment variables."""
        monkeypatch.setenv("ESTIMATOR_MAX_FUNCTION_EXPANSION_DEPTH", "4")
        monkeypatch.setenv("ESTIMATOR_PREVIEW_ENABLED", "false")
        settings = Settings(_env_file=None)
        assert settings.max_function_expansion_depth == 4
        assert settings.preview_enabled is False

    def test_log_level_normalized(self):
        """Test lowercase log levels are accepted."""
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        """Test unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="loud")

    @pytest.mark.parametrize("field", ["max_function_expansion_depth", "max_expansion_nodes"])
    def test_limits_must_be_positive(self, field):
        """Test expansion limits."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: 0})

    @pytest.mark.parametrize("precision", [-1, 13])
    def test_precision_range(self, precision):
        """Test output precision bounds."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, computed_output_precision=precision)

    def test_get_settings_is_cached(self):
        """Test the settings accessor returns one instance."""
        assert get_settings() is get_settings()
