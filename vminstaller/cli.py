"""
CLI setup and entry point.

Defines the Click command that checks dependencies, builds the
configuration and runs the install pipeline.
"""

import sys

import click
from click.core import ParameterSource
from rich.console import Console
from rich.markup import escape

from vminstaller import __version__
from vminstaller.config import DEFAULT_SIZE, InstallConfig, load_config, load_defaults
from vminstaller.exceptions import (
    ConfigError,
    MissingDependencyError,
    SignalDeliveryError,
    StageError,
)
from vminstaller.installer import Installer
from vminstaller.utils import REQUIRED_PROGRAMS, check_dependencies

console = Console()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="vm-installer")
@click.option(
    "-iso", "--iso",
    default="",
    help="Path to operating system iso file"
)
@click.option(
    "-size", "--size",
    default=DEFAULT_SIZE,
    show_default=True,
    help="Size of the virtual machine image"
)
@click.option(
    "-image", "--image",
    default="",
    help="Name of the Docker image"
)
@click.option(
    "-kvm", "--kvm",
    is_flag=True,
    help="Enable KVM full virtualization support"
)
@click.option(
    "-compress", "--compress",
    is_flag=True,
    help="Compress virtual machine image after installation"
)
@click.pass_context
def cli(
    ctx: click.Context,
    iso: str,
    size: str,
    image: str,
    kvm: bool,
    compress: bool
):
    """
    Install an operating system from an ISO into a qcow2 image and
    publish it as a Docker image.

    The machine is reachable over VNC on display :0 while the
    installation runs. Press enter once it is done.
    """
    try:
        check_dependencies(REQUIRED_PROGRAMS)
    except MissingDependencyError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        sys.exit(1)

    try:
        defaults = load_defaults(load_config())
    except (ConfigError, OSError) as e:
        console.print(f"[red]Cannot load configuration:[/] {escape(str(e))}")
        sys.exit(1)

    size, kvm, compress = (
        _file_default(ctx, name, value, defaults)
        for name, value in (("size", size), ("kvm", kvm), ("compress", compress))
    )

    try:
        config = InstallConfig.from_options(iso, size, image, kvm, compress)
    except ConfigError as e:
        raise click.UsageError(str(e), ctx=ctx)

    try:
        installer = Installer(config)
        installer.install()
    except SignalDeliveryError as e:
        console.print(f"[red]Fatal:[/] {escape(str(e))}")
        sys.exit(1)
    except StageError as e:
        console.print(f"[red]Installation failed:[/] {escape(str(e))}")
        sys.exit(1)

    console.print("[green]✓ Done.[/]")


def _file_default(ctx: click.Context, name: str, value, defaults: dict):
    """Use the config.yaml value for `name` unless it was set another way."""
    if ctx.get_parameter_source(name) is ParameterSource.DEFAULT and name in defaults:
        return defaults[name]
    return value


def main():
    """Console script entry point."""
    cli()
