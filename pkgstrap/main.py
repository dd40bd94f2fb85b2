"""
pkgstrap — CLI entrypoint.

Usage:
    pkgstrap --help
    pkgstrap ensure
    pkgstrap config check
    pkgstrap transport handshake elpa.gnu.org
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from pkgstrap import __version__
from pkgstrap.core.observability.logging_config import setup_from_env

_TRUST_CHOICES = click.Choice(["never", "ask", "always"])


def _confirm(question: str) -> bool:
    """Interactive confirmation for the ``ask`` trust policy."""
    if not sys.stdin.isatty():
        return False
    return click.confirm(question, default=False)


@click.group()
@click.version_option(version=__version__, prog_name="pkgstrap")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to bootstrap.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """pkgstrap — bootstrap private dependencies for a host application."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_from_env(debug=debug, verbose=verbose, quiet=quiet)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--trust", type=_TRUST_CHOICES, default=None, help="Untrusted certificate policy.")
@click.option(
    "--transport",
    type=click.Choice(["auto", "native", "external", "mock"]),
    default=None,
    help="How archives are downloaded.",
)
@click.pass_context
def ensure(ctx: click.Context, as_json: bool, trust: str | None, transport: str | None) -> None:
    """Make sure the configured dependencies are installed and loadable."""
    from pkgstrap.core.use_cases.ensure import ensure_dependencies

    result = ensure_dependencies(
        config_path=ctx.obj.get("config_path"),
        transport=transport,
        trust=trust,
        confirm=_confirm,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if not result.ok:
        click.secho(f"❌ {result.error}", fg="red")
        if result.cause and result.cause != result.error:
            click.echo(f"   cause: {result.cause}")
        if result.refresh:
            for name, err in result.refresh.failed.items():
                click.echo(f"   ✗ archive {name}: {err}")
        sys.exit(1)

    if ctx.obj.get("quiet"):
        return

    assert result.config is not None
    if result.already_present:
        click.secho(
            f"✅ {len(result.config.dependencies)} dependencies already present",
            fg="green",
        )
        return

    click.secho(f"✅ Bootstrapped into {result.package_dir}", fg="green", bold=True)
    for name in result.installed:
        click.echo(f"   + {name}")
    if result.refresh and result.refresh.failed:
        click.secho("   ⚠️  Archives that could not be refreshed:", fg="yellow")
        for name, err in result.refresh.failed.items():
            click.echo(f"     • {name}: {err}")


@cli.group()
def config() -> None:
    """Bootstrap configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate bootstrap.yml."""
    from pkgstrap.core.config.loader import load_config
    from pkgstrap.core.errors import ConfigError

    try:
        cfg = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "error": str(e)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({"valid": True, "config": cfg.model_dump(mode="json")}, indent=2))
        return

    click.secho("✅ Configuration is valid", fg="green", bold=True)
    click.echo(f"   Host: {cfg.host.name} {cfg.host.version}")
    click.echo(f"   Dependencies: {len(cfg.dependencies)}")
    click.echo(f"   Repositories: {', '.join(r.name for r in cfg.repositories)}")
    click.echo(f"   Transport: {cfg.transport} (trust: {cfg.tls.trust_policy.value})")


@cli.group()
def transport() -> None:
    """External TLS transport commands."""


@transport.command("handshake")
@click.argument("host")
@click.option("--port", "-p", default=443, type=int, help="Port number.")
@click.option("--trust", type=_TRUST_CHOICES, default=None, help="Untrusted certificate policy.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def transport_handshake(
    ctx: click.Context,
    host: str,
    port: int,
    trust: str | None,
    as_json: bool,
) -> None:
    """Negotiate a TLS channel to HOST and report the result."""
    from pkgstrap.core.use_cases.handshake import run_handshake

    result = run_handshake(
        host,
        port,
        config_path=ctx.obj.get("config_path"),
        trust=trust,
        confirm=_confirm,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if not result.ok:
        click.secho(f"❌ {host}:{port} — {result.error}", fg="red")
        if result.outcome and result.outcome.reason:
            click.echo(f"   reason: {result.outcome.reason.value}")
        sys.exit(1)

    assert result.outcome is not None
    click.secho(f"🔒 {host}:{port} — {result.outcome.state.value}", fg="green", bold=True)
    click.echo(f"   client: {' '.join(result.outcome.command)}")


if __name__ == "__main__":
    cli()
