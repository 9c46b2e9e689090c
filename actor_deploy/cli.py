"""Thin CLI wrapper for actor_deploy.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules. Errors from the core
propagate here unchanged and are reported as a single line plus the
underlying tool's diagnostic, with an exit code per failure kind.
"""

import logging
from pathlib import Path
from typing import Annotated, Any, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler

from actor_deploy import __version__
from actor_deploy.config import Settings, get_settings, print_settings_json
from actor_deploy.errors import ActorDeployError
from actor_deploy.types import ChangeAction, KeyRole

app = typer.Typer(
    name="actor-deploy",
    help="Actor Deploy - build, sign and provision a WebAssembly actor on AWS Lambda",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

ACTION_STYLES = {
    ChangeAction.CREATE: ("+", "green"),
    ChangeAction.UPDATE: ("~", "yellow"),
    ChangeAction.REPLACE: ("-/+", "magenta"),
    ChangeAction.DELETE: ("-", "red"),
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"actor-deploy version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Actor Deploy - build, sign and provision a WebAssembly actor on AWS Lambda."""
    configure_logging("DEBUG" if verbose else get_settings().log_level)


def _print_json(data: Any) -> None:
    console.print_json(data=data, default=str)


def _fail(error: ActorDeployError, json_output: bool = False) -> NoReturn:
    """Report an error and exit with its code."""
    if json_output:
        _print_json({"error": error.to_dict()})
    else:
        err_console.print(
            f"error[{error.code}]: {error.message}",
            style="red",
            markup=False,
            highlight=False,
        )
        if error.details:
            err_console.print(error.details, markup=False, highlight=False)
        if error.log_path:
            err_console.print(f"See log: {error.log_path}", markup=False, highlight=False)
    raise typer.Exit(code=error.exit_code)


# Collaborator factories; tests replace these with fakes


def make_key_generator(settings: Settings) -> Any:
    """Return the key generator used by keys-* commands."""
    from actor_deploy.keys.generator import NkKeyGenerator

    return NkKeyGenerator(timeout=settings.keygen_timeout)


def make_compiler(settings: Settings) -> Any:
    """Return the compiler used by build."""
    from actor_deploy.builds.runner import CargoCompiler

    return CargoCompiler(timeout=settings.compile_timeout)


def make_signer(settings: Settings) -> Any:
    """Return the signer used by build and sign."""
    from actor_deploy.builds.runner import WascapSigner

    return WascapSigner(timeout=settings.sign_timeout)


def make_provider(settings: Settings, stack: str) -> Any:
    """Return the provider used by deploy and destroy."""
    from actor_deploy.infra.provider import LocalProvider

    return LocalProvider(region=settings.region, stack=stack)


def _session_factory(settings: Settings) -> Any:
    from actor_deploy.db import create_all_tables, get_engine, get_session_factory

    engine = get_engine(settings.effective_state_db_url)
    create_all_tables(engine)
    return get_session_factory(engine)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print_json(print_settings_json(settings))
        return

    bootstrap = str(settings.bootstrap_path) if settings.bootstrap_path else "(none)"
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Key directory:       {settings.key_dir}")
    console.print(f"  Source directory:    {settings.source_dir}")
    console.print(f"  Output directory:    {settings.output_dir}")
    console.print(f"  State directory:     {settings.state_dir}")
    console.print(f"  State database:      {settings.effective_state_db_url}")
    console.print(f"  Stack file:          {settings.stack_file}")
    console.print(f"  Bootstrap binary:    {bootstrap}")
    console.print()
    console.print("[bold]Actor:[/bold]")
    console.print(f"  Name:                {settings.actor_name or '(crate name)'}")
    console.print(f"  Capabilities:        {', '.join(settings.capabilities)}", markup=False)
    console.print()
    console.print("[bold]Provisioning:[/bold]")
    console.print(f"  Region:              {settings.region}")
    console.print(f"  Stage:               {settings.stage}")
    console.print(f"  RUST_LOG:            {settings.function_log_level}")
    console.print(f"  RUST_BACKTRACE:      {settings.function_backtrace}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Compile timeout:     {settings.compile_timeout}")
    console.print(f"  Sign timeout:        {settings.sign_timeout}")
    console.print(f"  Keygen timeout:      {settings.keygen_timeout}")


def _generate_key(role: KeyRole, key_dir: Path | None, force: bool, json_output: bool) -> None:
    from actor_deploy.keys.store import KeyStore

    settings = get_settings()
    store = KeyStore(key_dir or settings.key_dir)
    try:
        pair = store.generate(role, make_key_generator(settings), force=force)
    except ActorDeployError as e:
        _fail(e, json_output)

    if json_output:
        _print_json(
            {
                "role": role.value,
                "public_key": pair.public_key,
                "seed_path": str(store.seed_path(role)),
            }
        )
    else:
        console.print(f"[green]Generated {role.value} key[/green] {pair.public_key}")
        console.print(f"  Seed: {store.seed_path(role)}")


KeyDirOption = Annotated[
    Path | None,
    typer.Option("--key-dir", "-k", help="Key directory (default from settings)"),
]
ForceOption = Annotated[
    bool,
    typer.Option("--force", "-f", help="Replace an existing key"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


@app.command("keys-account")
def keys_account(
    key_dir: KeyDirOption = None,
    force: ForceOption = False,
    json_output: JsonOption = False,
) -> None:
    """Generate the account (issuer) key pair."""
    _generate_key(KeyRole.ACCOUNT, key_dir, force, json_output)


@app.command("keys-module")
def keys_module(
    key_dir: KeyDirOption = None,
    force: ForceOption = False,
    json_output: JsonOption = False,
) -> None:
    """Generate the module (subject) key pair."""
    _generate_key(KeyRole.MODULE, key_dir, force, json_output)


def _print_artifact(artifact: Any, json_output: bool) -> None:
    if json_output:
        _print_json(artifact.model_dump(mode="json"))
        return
    console.print(f"[green]Built {artifact.name}[/green]")
    console.print(f"  Signed module: {artifact.signed_path}")
    console.print(f"  Package:       {artifact.package_path}")
    console.print(f"  Content hash:  {artifact.content_hash}")
    console.print(f"  Package hash:  {artifact.package_hash}")
    console.print(f"  Issuer:        {artifact.issuer}")
    console.print(f"  Subject:       {artifact.subject}")
    console.print(f"  Capabilities:  {', '.join(artifact.capabilities)}", markup=False)


CapOption = Annotated[
    list[str] | None,
    typer.Option("--cap", "-c", help="Capability to embed (can be repeated)"),
]
NameOption = Annotated[
    str | None,
    typer.Option("--name", "-n", help="Actor name embedded in the token"),
]
OutputDirOption = Annotated[
    Path | None,
    typer.Option("--output-dir", "-o", help="Directory for package and manifest"),
]
ReleaseOption = Annotated[
    bool,
    typer.Option("--release", help="Use the release profile"),
]
BootstrapOption = Annotated[
    Path | None,
    typer.Option("--bootstrap", help="Runtime binary to include in the package"),
]


@app.command()
def build(
    source_dir: Annotated[
        Path | None,
        typer.Option("--source", "-s", help="Actor crate directory"),
    ] = None,
    caps: CapOption = None,
    name: NameOption = None,
    release: ReleaseOption = False,
    output_dir: OutputDirOption = None,
    key_dir: KeyDirOption = None,
    bootstrap: BootstrapOption = None,
    json_output: JsonOption = False,
) -> None:
    """Compile, sign and package the actor."""
    from actor_deploy.builds.service import build_artifact
    from actor_deploy.keys.store import KeyStore

    settings = get_settings()
    try:
        artifact = build_artifact(
            source_dir or settings.source_dir,
            key_store=KeyStore(key_dir or settings.key_dir),
            capabilities=caps or settings.capabilities,
            compiler=make_compiler(settings),
            signer=make_signer(settings),
            output_dir=output_dir or settings.output_dir,
            name=name or settings.actor_name,
            release=release,
            bootstrap=bootstrap or settings.bootstrap_path,
        )
    except ActorDeployError as e:
        _fail(e, json_output)

    _print_artifact(artifact, json_output)


@app.command()
def sign(
    unsigned: Annotated[
        Path | None,
        typer.Argument(help="Compiled module (default: crate output for the profile)"),
    ] = None,
    caps: CapOption = None,
    name: NameOption = None,
    release: ReleaseOption = False,
    output_dir: OutputDirOption = None,
    key_dir: KeyDirOption = None,
    bootstrap: BootstrapOption = None,
    json_output: JsonOption = False,
) -> None:
    """Sign an already compiled module and package it."""
    from actor_deploy.builds.runner import module_output_dir, read_crate_name
    from actor_deploy.builds.service import sign_artifact
    from actor_deploy.keys.store import KeyStore

    settings = get_settings()
    try:
        if unsigned is None:
            crate = read_crate_name(settings.source_dir)
            unsigned = module_output_dir(settings.source_dir, release) / f"{crate}.wasm"
        artifact = sign_artifact(
            unsigned,
            key_store=KeyStore(key_dir or settings.key_dir),
            capabilities=caps or settings.capabilities,
            signer=make_signer(settings),
            output_dir=output_dir or settings.output_dir,
            name=name or settings.actor_name,
            release=release,
            bootstrap=bootstrap or settings.bootstrap_path,
        )
    except ActorDeployError as e:
        _fail(e, json_output)

    _print_artifact(artifact, json_output)


def _print_plan(changeset: Any) -> None:
    if changeset.is_empty:
        console.print("[green]No changes. Infrastructure is up to date.[/green]")
        return
    console.print(f"[bold]Plan for {changeset.stack}:[/bold]")
    for change in changeset.changes:
        symbol, style = ACTION_STYLES[change.action]
        note = " (known after apply)" if change.unknown else ""
        console.print(
            f"  [{style}]{symbol} {change.resource_id}[/{style}] ({change.kind}){note}"
        )
    summary = changeset.summary()
    console.print(
        f"  {summary['create']} to create, {summary['update']} to update, "
        f"{summary['replace']} to replace, {summary['delete']} to delete."
    )


def _print_outputs(outputs: Any) -> None:
    console.print("[bold]Outputs:[/bold]")
    console.print(f"  function_name = {outputs.function_name or '(none)'}")
    console.print(f"  invoke_url    = {outputs.invoke_url or '(none)'}")


@app.command()
def deploy(
    stack_file: Annotated[
        Path | None,
        typer.Option("--stack", help="Desired-state document"),
    ] = None,
    manifest: Annotated[
        Path | None,
        typer.Option("--manifest", help="Build manifest (default: <output-dir>/build.json)"),
    ] = None,
    plan_only: Annotated[
        bool,
        typer.Option("--plan-only", help="Show the plan without applying it"),
    ] = False,
    json_output: JsonOption = False,
) -> None:
    """Plan and apply the stack for the built artifact."""
    from actor_deploy.builds.artifacts import read_build_manifest
    from actor_deploy.infra.schema import load_stack
    from actor_deploy.infra.service import deploy as deploy_stack
    from actor_deploy.infra.service import stack_variables

    settings = get_settings()
    try:
        stack = load_stack(stack_file or settings.stack_file)
        artifact = read_build_manifest(manifest or settings.build_manifest_path)
        result = deploy_stack(
            stack,
            stack_variables(artifact, settings),
            provider=make_provider(settings, stack.name),
            session_factory=_session_factory(settings),
            lock_path=settings.lock_path,
            plan_only=plan_only,
        )
    except ActorDeployError as e:
        _fail(e, json_output)

    if json_output:
        _print_json(result.to_dict())
        return

    _print_plan(result.changeset)
    if result.state is not None and not result.changeset.is_empty:
        console.print(
            f"[green]Apply complete![/green] {len(result.state.applied)} change(s) applied."
        )
    if result.outputs is not None:
        _print_outputs(result.outputs)


@app.command()
def destroy(
    stack_file: Annotated[
        Path | None,
        typer.Option("--stack", help="Desired-state document (for the stack name)"),
    ] = None,
    plan_only: Annotated[
        bool,
        typer.Option("--plan-only", help="Show the plan without applying it"),
    ] = False,
    json_output: JsonOption = False,
) -> None:
    """Delete every applied resource."""
    from actor_deploy.errors import StackValidationError
    from actor_deploy.infra.schema import load_stack
    from actor_deploy.infra.service import destroy as destroy_stack

    settings = get_settings()
    path = stack_file or settings.stack_file
    stack_name = "default"
    if path.exists():
        try:
            stack_name = load_stack(path).name
        except StackValidationError as e:
            # Destroy works from applied state alone
            logger.warning("Ignoring invalid stack document %s: %s", path, e.message)
    try:
        result = destroy_stack(
            stack_name,
            provider=make_provider(settings, stack_name),
            session_factory=_session_factory(settings),
            lock_path=settings.lock_path,
            plan_only=plan_only,
        )
    except ActorDeployError as e:
        _fail(e, json_output)

    if json_output:
        _print_json(result.to_dict())
        return

    _print_plan(result.changeset)
    if result.state is not None:
        console.print(
            f"[green]Destroy complete![/green] {len(result.state.applied)} resource(s) destroyed."
        )


@app.command()
def outputs(
    json_output: JsonOption = False,
) -> None:
    """Show the invocation URL and function name from applied state."""
    from actor_deploy.infra.service import current_outputs

    settings = get_settings()
    resolved = current_outputs(_session_factory(settings))
    if json_output:
        _print_json(resolved.to_dict())
    else:
        _print_outputs(resolved)


@app.command()
def deployments(
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", min=1, help="Number of runs to show"),
    ] = 20,
    json_output: JsonOption = False,
) -> None:
    """Show recent deploy and destroy runs, newest first."""
    from actor_deploy.infra.service import deployment_history

    settings = get_settings()
    runs = deployment_history(_session_factory(settings), limit=limit)
    if json_output:
        _print_json(runs)
        return

    if not runs:
        console.print("No deployments recorded.")
        return
    for run in runs:
        style = "green" if run["status"] == "succeeded" else "red"
        line = (
            f"  #{run['id']} {run['action']} {run['stack']} "
            f"[{style}]{run['status']}[/{style}] "
            f"{run['applied']}/{run['planned']} applied  {run['started_at']}"
        )
        if run["error_code"]:
            line += f"  ({run['error_code']})"
        console.print(line)


@app.command("runtime-settings")
def runtime_settings(
    json_output: JsonOption = False,
) -> None:
    """Show the Lambda function settings the actor host reads."""
    from actor_deploy.runtime.client import RuntimeSettingsError, load_function_settings

    try:
        values = load_function_settings()
    except RuntimeSettingsError as e:
        if json_output:
            _print_json({"error": {"code": "missing_setting", "message": str(e)}})
        else:
            err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        _print_json(values)
    else:
        for key, value in values.items():
            console.print(f"  {key} = {value}", markup=False)


if __name__ == "__main__":
    app()
