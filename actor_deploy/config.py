"""Configuration settings for actor_deploy.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CAPABILITIES = ["awslambda:event", "wascc:logging"]


def _default_state_dir() -> Path:
    """Return the default state directory."""
    return Path(".actor-deploy")


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the ACTOR_DEPLOY_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="ACTOR_DEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    key_dir: Path = Field(
        default=Path(".keys"),
        description="Directory holding account/module key files",
    )
    source_dir: Path = Field(
        default=Path("."),
        description="Actor crate directory (contains Cargo.toml)",
    )
    output_dir: Path = Field(
        default=Path("build"),
        description="Directory for the package, build manifest and logs",
    )
    state_dir: Path = Field(
        default_factory=_default_state_dir,
        description="Directory for applied state and its lock file",
    )
    state_db_url: str | None = Field(
        default=None,
        description="State database URL (defaults to SQLite in state_dir)",
    )
    stack_file: Path = Field(
        default=Path("stacks/helloworld.yaml"),
        description="Desired-state document",
    )
    bootstrap_path: Path | None = Field(
        default=None,
        description="Custom runtime binary to include in the package",
    )

    # Actor
    actor_name: str | None = Field(
        default=None,
        description="Actor name embedded in the token (defaults to crate name)",
    )
    capabilities: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CAPABILITIES),
        description="Capabilities the signed module may request",
    )

    # Provisioning
    region: str = Field(default="us-east-1", description="Cloud region")
    stage: str = Field(default="test", description="Gateway deployment stage")
    function_log_level: str = Field(
        default="info",
        description="RUST_LOG value passed to the deployed function",
    )
    function_backtrace: str = Field(
        default="1",
        description="RUST_BACKTRACE value passed to the deployed function",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    compile_timeout: int = Field(
        default=1800,
        ge=10,
        description="Timeout for the compiler",
    )
    sign_timeout: int = Field(
        default=120,
        ge=5,
        description="Timeout for the signer",
    )
    keygen_timeout: int = Field(
        default=60,
        ge=5,
        description="Timeout for the key generator",
    )

    @property
    def effective_state_db_url(self) -> str:
        """State database URL, falling back to SQLite inside state_dir."""
        if self.state_db_url:
            return self.state_db_url
        return f"sqlite:///{self.state_dir / 'state.sqlite'}"

    @property
    def lock_path(self) -> Path:
        """Advisory lock file guarding the applied state."""
        return self.state_dir / "state.lock"

    @property
    def build_manifest_path(self) -> Path:
        """Location of the build manifest written by `build`/`sign`."""
        return self.output_dir / "build.json"


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["DEFAULT_CAPABILITIES", "Settings", "get_settings", "print_settings_json"]
