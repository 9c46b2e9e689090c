"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

from actor_deploy.config import (
    DEFAULT_CAPABILITIES,
    Settings,
    get_settings,
    print_settings_json,
)


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        settings = Settings()

        assert settings.key_dir == Path(".keys")
        assert settings.output_dir == Path("build")
        assert settings.stack_file == Path("stacks/helloworld.yaml")
        assert settings.capabilities == DEFAULT_CAPABILITIES
        assert settings.stage == "test"
        assert settings.log_level == "INFO"
        assert settings.function_log_level == "info"
        assert settings.function_backtrace == "1"

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "ACTOR_DEPLOY_STAGE": "prod",
                "ACTOR_DEPLOY_LOG_LEVEL": "DEBUG",
                "ACTOR_DEPLOY_COMPILE_TIMEOUT": "600",
                "ACTOR_DEPLOY_CAPABILITIES": '["awslambda:event"]',
            },
        ):
            settings = Settings()
            assert settings.stage == "prod"
            assert settings.log_level == "DEBUG"
            assert settings.compile_timeout == 600
            assert settings.capabilities == ["awslambda:event"]

    def test_state_db_url_defaults_to_state_dir(self) -> None:
        """The state database should live inside the state directory."""
        settings = Settings(state_dir=Path("/tmp/actor-state"))
        assert settings.effective_state_db_url == "sqlite:////tmp/actor-state/state.sqlite"
        assert settings.lock_path == Path("/tmp/actor-state/state.lock")

    def test_explicit_state_db_url(self) -> None:
        """An explicit database URL should win."""
        settings = Settings(state_db_url="sqlite:///:memory:")
        assert settings.effective_state_db_url == "sqlite:///:memory:"

    def test_build_manifest_path(self) -> None:
        """The build manifest should sit in the output directory."""
        settings = Settings(output_dir=Path("out"))
        assert settings.build_manifest_path == Path("out") / "build.json"


class TestGetSettings:
    """Test get_settings function."""

    def test_get_settings_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        settings = get_settings()
        assert isinstance(settings, Settings)


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_print_settings_json(self) -> None:
        """print_settings_json should return valid JSON."""
        parsed = json.loads(print_settings_json(Settings()))

        assert "key_dir" in parsed
        assert "state_dir" in parsed
        assert "capabilities" in parsed
        assert "region" in parsed

    def test_print_settings_json_default(self) -> None:
        """print_settings_json without args should use default settings."""
        parsed = json.loads(print_settings_json())
        assert "stack_file" in parsed
