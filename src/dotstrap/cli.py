#!/usr/bin/env python3
"""
Command-line interface for dotstrap.

This module provides the CLI commands for installing a dotfiles repository,
bootstrapping from a local checkout and running the package manager and font
helpers on their own.
"""

import os
import sys
import json
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .core.apt_repos import AptRepoManager, REPOSITORIES, select_repositories
from .core.fonts import AVAILABLE_FONTS, default_font, FontInstaller, MACOS_HINT
from .core.installer import Bootstrapper, Installer, install_apt_packages
from .core.packages import BrewManager
from .core.settings import load_settings, SOURCE_TYPES
from .errors import DotstrapError
from .utils.logger import LOG_STYLES, setup_logging
from .utils.platform import platform_detector
from .utils.shell import CommandError

# Data goes to stdout, everything else to stderr
console = Console()
err_console = Console(stderr=True)


def fail(message: str):
    """Print an error and exit 1."""
    err_console.print(f"[red]Error:[/red] {message}", highlight=False)
    sys.exit(1)


def get_settings(ctx, **overrides):
    """Load settings for a command, applying its flags on top."""
    try:
        return load_settings(config_file=ctx.obj.get('config'), overrides=overrides)
    except DotstrapError as e:
        fail(str(e))


# Main CLI group
@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--log-file', type=click.Path(path_type=Path), help='Log file path')
@click.option('--config', 'config_file', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='Settings file (YAML or TOML)')
@click.option('--log-style', type=click.Choice(LOG_STYLES), default='rich', show_default=True,
              help='Console log style')
@click.version_option(__version__, '-V', '--version', prog_name='dotstrap',
                      message='Dotfiles Installer v%(version)s')
@click.pass_context
def cli(ctx, verbose: bool, log_file: Optional[Path], config_file: Optional[Path], log_style: str):
    """dotstrap - bootstrap a machine from a dotfiles repository."""
    ctx.ensure_object(dict)

    setup_logging(
        level='DEBUG' if verbose else 'INFO',
        log_file=log_file,
        verbose=verbose,
        style=log_style
    )

    ctx.obj['config'] = config_file
    ctx.obj['verbose'] = verbose


# Install command
@cli.command()
@click.option('--force', '-f', is_flag=True, help='Skip all confirmation prompts (auto-yes to all)')
@click.option('--dry-run', '-n', is_flag=True, help='Preview changes without writing anything')
@click.option('--backup', '-b', 'backup_dir', type=str, help='Backup overwritten files to this directory')
@click.option('--branch', type=str, help='Use a specific branch (default: master)')
@click.option('--user', 'github_user', type=str, help='Use a different GitHub user')
@click.option('--repo', 'github_repo', type=str, help='Use a different repo name')
@click.option('--no-brew', is_flag=True, help='Skip Homebrew package installation')
@click.option('--macos', is_flag=True, help='Apply macOS system defaults (requires sudo)')
@click.option('--strict', is_flag=True, help='Exit with error code if any warnings occur')
@click.option('--source', type=click.Choice(SOURCE_TYPES), help='Download a tarball or clone with git')
@click.pass_context
def install(ctx, **options):
    """Download the dotfiles repository and install it into $HOME."""
    settings = get_settings(ctx, **options)

    try:
        code = Installer(settings).run()
    except (DotstrapError, CommandError) as e:
        fail(str(e))

    if code:
        sys.exit(code)


# Bootstrap command
@cli.command()
@click.argument('source_dir', type=click.Path(exists=True, file_okay=False, path_type=Path), default='.')
@click.option('--force', '-f', is_flag=True, help='Skip the confirmation prompt')
@click.option('--dry-run', '-n', is_flag=True, help='Show what would change without writing')
@click.option('--backup', '-b', 'backup_dir', type=str, help='rsync backup dir for overwritten files')
@click.option('--no-brew', is_flag=True, help='Skip the Homebrew bundle before syncing')
@click.option('--no-apt', is_flag=True, help='Skip Aptfile packages before syncing')
@click.option('--apt-desktop', is_flag=True, help='Include Aptfile.desktop packages')
@click.option('--apt-setup-repos', is_flag=True, help='Set up external apt repositories')
@click.option('--macos', is_flag=True, help='Run .macos after syncing (skipped on --dry-run)')
@click.pass_context
def bootstrap(ctx, source_dir: Path, **options):
    """Sync a local dotfiles checkout into $HOME."""
    settings = get_settings(ctx, **options)

    try:
        code = Bootstrapper(settings, source_dir).run()
    except (DotstrapError, CommandError) as e:
        fail(str(e))

    if code:
        sys.exit(code)


# Apt command
@cli.command()
@click.option('--desktop', is_flag=True, help='Include Aptfile.desktop (in addition to Aptfile.core)')
@click.option('--setup-repos', is_flag=True, help='Configure external repositories first')
@click.option('--file', 'files', type=str, multiple=True, help='Include a specific Aptfile (repeatable)')
@click.option('--dir', 'apt_dir', type=click.Path(file_okay=False, path_type=Path), default='.',
              help='Directory holding Aptfile.core / Aptfile.desktop')
@click.pass_context
def apt(ctx, desktop: bool, setup_repos: bool, files: Tuple[str, ...], apt_dir: Path):
    """Install Debian/Ubuntu packages from Aptfiles."""
    settings = get_settings(ctx, apt_desktop=desktop, apt_setup_repos=setup_repos)

    try:
        report = install_apt_packages(
            apt_dir,
            files=files,
            desktop=settings.apt_desktop,
            setup_repos=settings.apt_setup_repos
        )
    except (DotstrapError, CommandError) as e:
        fail(str(e))

    err_console.print(
        f"[green]{len(report.installed)} installed[/green], "
        f"{len(report.already_installed)} already installed, "
        f"[yellow]{len(report.failed)} failed[/yellow]"
    )


# Apt repositories command
@cli.command('apt-repos')
@click.option('--all', 'include_all', is_flag=True, help='Configure Caddy, Azure CLI and PostgreSQL')
@click.option('--caddy', is_flag=True, help='Configure the Caddy repository')
@click.option('--azure-cli', is_flag=True, help='Configure the Azure CLI repository')
@click.option('--postgres', is_flag=True, help='Configure the PostgreSQL (PGDG) repository')
@click.option('--ghostty', is_flag=True, help='Configure the Ghostty repository')
def apt_repos(include_all: bool, **flags):
    """Configure external apt repositories."""
    names = [name for name in REPOSITORIES if flags.get(name.replace('-', '_'))]

    try:
        AptRepoManager().setup_all(select_repositories(names, include_all=include_all))
    except (DotstrapError, CommandError) as e:
        fail(str(e))


# Brew command
@cli.command(context_settings={'ignore_unknown_options': True})
@click.option('--brewfile', type=click.Path(dir_okay=False, path_type=Path),
              help='Brewfile to apply (default: $BREWFILE or ./Brewfile)')
@click.argument('bundle_args', nargs=-1, type=click.UNPROCESSED)
def brew(brewfile: Optional[Path], bundle_args: Tuple[str, ...]):
    """Apply a Brewfile with Homebrew; extra arguments go to brew bundle."""
    if brewfile is None:
        brewfile = Path(os.environ.get('BREWFILE') or 'Brewfile')

    if not brewfile.is_file():
        fail(f"Brewfile not found at {brewfile}")

    manager = BrewManager()
    if not manager.available:
        fail("Homebrew not installed.")

    try:
        manager.setup(brewfile, extra_args=bundle_args)
    except (DotstrapError, CommandError) as e:
        fail(str(e))


# Brew drift command
@cli.command('brew-drift')
@click.argument('brewfile', type=click.Path(dir_okay=False, path_type=Path), default='Brewfile')
def brew_drift(brewfile: Path):
    """Compare installed Homebrew packages with a Brewfile."""
    try:
        report = BrewManager().drift(brewfile)
    except (DotstrapError, CommandError) as e:
        fail(str(e))

    click.echo(report.render())


# Fonts commands
@cli.group()
def fonts():
    """Install Nerd Fonts (Linux)."""
    pass


@fonts.command('install')
@click.option('--all', 'install_all', is_flag=True, help='Install all available fonts (default)')
@click.option('--font', 'names', type=str, multiple=True, help='Install only this font (repeatable)')
@click.option('--default', 'default_name', type=str, help='Default font for terminal and editor configs')
@click.option('--version', 'version', type=str, help='Nerd Fonts release version')
def fonts_install(install_all: bool, names: Tuple[str, ...], default_name: Optional[str], version: Optional[str]):
    """Download Nerd Fonts and configure the default font."""
    if not platform_detector.is_linux:
        err_console.print(MACOS_HINT)
        return

    installer = FontInstaller(version=version)
    selected = [] if install_all else list(names)
    report = installer.install(selected)

    console.print()
    if report.families:
        console.print("Done! Installed fonts:")
        for family in report.families:
            console.print(f"  {family}", markup=False, highlight=False)
        console.print(f"Total: {report.file_count} font files")
    else:
        console.print("  (no fonts found)")

    default_name = default_name or default_font()
    report.configured = installer.configure_default_font(default_name)
    console.print(f"\nDefault font: {default_name} Nerd Font")
    if report.configured:
        console.print(f"Configured in: {', '.join(report.configured)}")


@fonts.command('list')
@click.option('--default', 'default_name', type=str, help='Font to mark as default')
def fonts_list(default_name: Optional[str]):
    """List available fonts."""
    default_name = default_name or default_font()
    console.print("Available Nerd Fonts:")
    for font in AVAILABLE_FONTS:
        suffix = " (default)" if font == default_name else ""
        console.print(f"  - {font}{suffix}", markup=False, highlight=False)


# OS report command
@cli.command('os')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
def os_info(output_format: str):
    """Show the detected operating system."""
    info = platform_detector.get_system_info()

    if output_format == 'json':
        click.echo(json.dumps(info, indent=2))
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Property", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    for key, value in info.items():
        table.add_row(key, value)

    console.print(table)


def main():
    """Main entry point for the CLI."""
    try:
        cli.main(standalone_mode=False)
    except click.exceptions.Abort:
        err_console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except (DotstrapError, CommandError) as e:
        fail(str(e))


if __name__ == '__main__':
    main()
