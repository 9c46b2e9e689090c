"""Tool runner for the compiler and signer.

This module handles:
- Composing `cargo build` and `wascap sign` commands
- Executing them with subprocess
- Capturing stdout/stderr to per-step log files
- Enforcing timeouts

The compiler and signer are exposed as small collaborator protocols so the
build service can run against fakes in tests.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tomllib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from actor_deploy.errors import CompilationFailedError, SigningFailedError

logger = logging.getLogger(__name__)

WASM_TARGET = "wasm32-unknown-unknown"

# Lines of log output to surface in error details
LOG_TAIL_LINES = 20


class ToolExecutionError(Exception):
    """Raised when a tool cannot be started or times out."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


@dataclass
class ToolResult:
    """Result of an external tool execution.

    Attributes:
        success: Whether the tool exited with code 0.
        exit_code: Process exit code.
        log_path: Path to the log file.
        started_at: Start time.
        finished_at: Finish time.
        command: The command that was executed.
    """

    success: bool
    exit_code: int
    log_path: Path
    started_at: datetime
    finished_at: datetime
    command: str

    def log_tail(self, lines: int = LOG_TAIL_LINES) -> str:
        """Return the last lines of the log file."""
        try:
            content = self.log_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return ""
        return "\n".join(content.splitlines()[-lines:])


def run_tool(
    cmd: list[str],
    cwd: Path,
    log_path: Path,
    timeout: int | None = None,
    env_override: dict[str, str] | None = None,
) -> ToolResult:
    """Execute a tool, capturing its output in a log file.

    Args:
        cmd: Command as a list of strings.
        cwd: Working directory.
        log_path: File that receives stdout/stderr.
        timeout: Timeout in seconds (None = no timeout).
        env_override: Optional environment variable overrides.

    Returns:
        ToolResult with execution details.

    Raises:
        ToolExecutionError: If the tool cannot be started or times out.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    cmd_str = shlex.join(cmd)
    logger.info("Executing: %s", cmd_str)
    logger.debug("Working directory: %s", cwd)

    started_at = datetime.now(timezone.utc)

    try:
        with log_path.open("w") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write(f"# CWD: {cwd}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            env: dict[str, str] | None = None
            if env_override:
                env = dict(os.environ)
                env.update(env_override)

            result = subprocess.run(
                cmd,
                cwd=cwd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                env=env,
                check=False,
            )
            exit_code = result.returncode

    except subprocess.TimeoutExpired as e:
        message = f"{cmd[0]} timed out after {timeout} seconds"
        logger.error("%s. See log: %s", message, log_path)
        with log_path.open("a") as log_file:
            log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
        raise ToolExecutionError(message, exit_code=-1) from e

    except OSError as e:
        message = f"Failed to execute {cmd[0]}: {e}"
        logger.error(message)
        raise ToolExecutionError(message) from e

    finished_at = datetime.now(timezone.utc)
    with log_path.open("a") as log_file:
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {exit_code}\n")
        duration = (finished_at - started_at).total_seconds()
        log_file.write(f"# Duration: {duration:.1f}s\n")

    if exit_code != 0:
        logger.error("%s exited with code %d. See log: %s", cmd[0], exit_code, log_path)

    return ToolResult(
        success=exit_code == 0,
        exit_code=exit_code,
        log_path=log_path,
        started_at=started_at,
        finished_at=finished_at,
        command=cmd_str,
    )


def read_crate_name(source_dir: Path) -> str:
    """Read the crate name from Cargo.toml as it appears in build outputs.

    Raises:
        CompilationFailedError: If Cargo.toml is missing or has no name.
    """
    manifest = source_dir / "Cargo.toml"
    try:
        with manifest.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        raise CompilationFailedError(f"No Cargo.toml in {source_dir}") from None
    except tomllib.TOMLDecodeError as e:
        raise CompilationFailedError(f"Invalid Cargo.toml: {e}") from e

    name = data.get("package", {}).get("name")
    if not name:
        raise CompilationFailedError(f"Cargo.toml in {source_dir} has no package name")
    return str(name).replace("-", "_")


def module_output_dir(source_dir: Path, release: bool) -> Path:
    """Directory cargo writes the compiled module into."""
    profile = "release" if release else "debug"
    return source_dir / "target" / WASM_TARGET / profile


def signed_module_path(unsigned: Path) -> Path:
    """Fixed location of the signed module next to the unsigned one."""
    return unsigned.with_name(f"{unsigned.stem}_signed{unsigned.suffix}")


@runtime_checkable
class Compiler(Protocol):
    """Compiles actor source into an unsigned module."""

    def compile(self, source_dir: Path, release: bool, log_dir: Path) -> Path: ...


@runtime_checkable
class Signer(Protocol):
    """Embeds a capability-scoped token into a module."""

    def sign(
        self,
        unsigned: Path,
        signed: Path,
        issuer_seed: Path,
        subject_seed: Path,
        capabilities: list[str],
        name: str,
        log_dir: Path,
    ) -> None: ...


def compose_compile_command(release: bool, cargo: str = "cargo") -> list[str]:
    """Compose the cargo command targeting the portable module format."""
    cmd = [cargo, "build", "--target", WASM_TARGET]
    if release:
        cmd.append("--release")
    return cmd


def compose_sign_command(
    unsigned: Path,
    signed: Path,
    issuer_seed: Path,
    subject_seed: Path,
    capabilities: list[str],
    name: str,
    wascap: str = "wascap",
) -> list[str]:
    """Compose the `wascap sign` command.

    Args:
        unsigned: Module to sign.
        signed: Output path of the signed module.
        issuer_seed: Account seed file.
        subject_seed: Module seed file.
        capabilities: Capability claims to embed.
        name: Actor name embedded in the token.
        wascap: Signer executable.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = [
        wascap,
        "sign",
        str(unsigned),
        str(signed),
        "--issuer",
        str(issuer_seed),
        "--subject",
        str(subject_seed),
    ]
    for cap in capabilities:
        cmd.extend(["--cap", cap])
    cmd.extend(["--name", name])
    return cmd


class CargoCompiler:
    """Compiles a Rust crate to a wasm32 module with cargo."""

    def __init__(self, cargo: str = "cargo", timeout: int | None = None) -> None:
        self.cargo = cargo
        self.timeout = timeout

    def compile(self, source_dir: Path, release: bool, log_dir: Path) -> Path:
        crate = read_crate_name(source_dir)
        cmd = compose_compile_command(release, cargo=self.cargo)
        try:
            result = run_tool(
                cmd,
                cwd=source_dir,
                log_path=log_dir / "compile.log",
                timeout=self.timeout,
            )
        except ToolExecutionError as e:
            raise CompilationFailedError(str(e)) from e

        if not result.success:
            raise CompilationFailedError(
                f"Compilation failed with exit code {result.exit_code}",
                details=result.log_tail(),
                log_path=str(result.log_path),
            )

        module = module_output_dir(source_dir, release) / f"{crate}.wasm"
        if not module.is_file():
            raise CompilationFailedError(
                f"Compiler produced no module at {module}",
                log_path=str(result.log_path),
            )
        return module


class WascapSigner:
    """Signs modules with `wascap sign`."""

    def __init__(self, wascap: str = "wascap", timeout: int | None = None) -> None:
        self.wascap = wascap
        self.timeout = timeout

    def sign(
        self,
        unsigned: Path,
        signed: Path,
        issuer_seed: Path,
        subject_seed: Path,
        capabilities: list[str],
        name: str,
        log_dir: Path,
    ) -> None:
        cmd = compose_sign_command(
            unsigned,
            signed,
            issuer_seed,
            subject_seed,
            capabilities,
            name,
            wascap=self.wascap,
        )
        try:
            result = run_tool(
                cmd,
                cwd=unsigned.parent,
                log_path=log_dir / "sign.log",
                timeout=self.timeout,
            )
        except ToolExecutionError as e:
            raise SigningFailedError(str(e)) from e

        if not result.success:
            raise SigningFailedError(
                f"Signing failed with exit code {result.exit_code}",
                details=result.log_tail(),
                log_path=str(result.log_path),
            )
        if not signed.is_file():
            raise SigningFailedError(
                f"Signer produced no module at {signed}",
                log_path=str(result.log_path),
            )


__all__ = [
    "WASM_TARGET",
    "CargoCompiler",
    "Compiler",
    "Signer",
    "ToolExecutionError",
    "ToolResult",
    "WascapSigner",
    "compose_compile_command",
    "compose_sign_command",
    "module_output_dir",
    "read_crate_name",
    "run_tool",
    "signed_module_path",
]
