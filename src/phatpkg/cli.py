"""The `phatpkg` command-line interface."""

import importlib.metadata
from pathlib import Path

import click
from pyvider.telemetry import LoggingConfig, TelemetryConfig, setup_telemetry

from .config import PhatPkgConfig, load_config
from .exceptions import BuildError, ConfigError
from .logbook import LogBook
from .metadata import MetadataExtractor, display_name_for
from .packaging.orchestrator import BuildOrchestrator
from .packaging.resolver import ArchiveResolver
from .packaging.scratch import WorkingArea
from .tools import ToolRunner

try:
    __version__ = importlib.metadata.version("phatpkg")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0-dev"


def _configure_telemetry(verbose: bool) -> None:
    setup_telemetry(
        TelemetryConfig(
            service_name="phatpkg",
            logging=LoggingConfig(default_level="DEBUG" if verbose else "WARNING"),
        )
    )


def _load_config(config_path: str | None) -> PhatPkgConfig:
    try:
        return load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        click.secho(f"❌ {e.category}: {e}", fg="red", err=True)
        raise click.Abort() from e


def _write_log_file(path: Path, logbook: LogBook) -> None:
    try:
        path.write_text(logbook.export(), encoding="utf-8")
    except OSError as e:
        click.secho(f"⚠️ Could not write log file {path}: {e}", fg="yellow", err=True)


config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, resolve_path=True),
    help="TOML file with a [tool.phatpkg] or [phatpkg] table.",
)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(
    __version__,
    "-V",
    "--version",
    prog_name="phatpkg",
    message="%(prog)s version %(version)s",
)
def cli() -> None:
    """Create universal macOS packages from separate ARM64 and Intel x86_64 applications."""
    pass


@cli.command("create")
@click.option(
    "-a",
    "--arm64",
    "arm_input",
    required=True,
    help="Path or URL to the ARM64 (Apple Silicon) application source.",
)
@click.option(
    "-i",
    "--intel",
    "intel_input",
    required=True,
    help="Path or URL to the Intel x86_64 application source.",
)
@click.option(
    "-o",
    "--output",
    "output_dir",
    required=True,
    help="Output directory for the universal package.",
)
@click.option("-v", "--verbose", is_flag=True, help="Show verbose output during processing.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, resolve_path=True),
    help="Write the full build log to this file when the run ends.",
)
@config_option
def create_command(
    arm_input: str,
    intel_input: str,
    output_dir: str,
    verbose: bool,
    log_file: str | None,
    config_path: str | None,
) -> None:
    """
    Builds an installer that detects the host architecture and installs the
    matching build. Inputs may be .app, .zip, .tar.bz2, .tbz, .bz2 or .dmg
    files, or http(s) URLs to them.
    """
    click.echo(f"🎯 PhatPKG v{__version__}")
    click.echo("Creating universal macOS package...\n")

    config = _load_config(config_path)
    verbose = verbose or config.verbose
    _configure_telemetry(verbose)

    logbook = LogBook()
    if verbose:
        logbook.add_listener(lambda entry: click.echo(entry.formatted_message, err=True))
    orchestrator = BuildOrchestrator(
        arm_input,
        intel_input,
        output_dir,
        logbook=logbook,
        progress=lambda message: click.echo(f"📦 {message}"),
        config=config,
    )
    try:
        result = orchestrator.build_package()
    except BuildError as e:
        click.secho(f"\n❌ {e.category}: {e}", fg="red", err=True)
        raise click.Abort() from e
    finally:
        if log_file:
            _write_log_file(Path(log_file), logbook)

    click.secho("\n✅ Successfully created universal package!", fg="green")
    click.echo(f"📁 Package: {result.package_path}")
    click.echo(f"   App: {result.app_name} v{result.version} ({result.identifier})")


@cli.command("inspect")
@click.argument("source")
@config_option
def inspect_command(source: str, config_path: str | None) -> None:
    """Shows the name, identifier, version and architecture of one input."""
    config = _load_config(config_path)
    _configure_telemetry(config.verbose)

    logbook = LogBook()
    runner = ToolRunner(logbook, timeout=config.tool_timeout)
    resolver = ArchiveResolver(
        runner, logbook, tools=config.tools, download_timeout=config.download_timeout
    )
    extractor = MetadataExtractor(runner, logbook, tools=config.tools)

    with WorkingArea(logbook) as area:
        try:
            bundle_path = resolver.resolve(source, area.root)
            metadata = extractor.extract(bundle_path)
        except BuildError as e:
            click.secho(f"❌ {e.category}: {e}", fg="red", err=True)
            raise click.Abort() from e
        finally:
            resolver.detach_remaining()

    click.echo(f"Name: {display_name_for(bundle_path, metadata)}")
    click.echo(f"Identifier: {metadata.identifier}")
    click.echo(f"Version: {metadata.version}")
    click.echo(f"Architecture: {metadata.architecture}")


main = cli

if __name__ == "__main__":
    cli()
