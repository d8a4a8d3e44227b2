#!/usr/bin/env python3
"""
Installer workflows for dotstrap.

``Installer`` downloads a dotfiles repository and reconciles it with the home
directory, then runs the optional post-sync steps. ``Bootstrapper`` does the
same from a local checkout and also drives the package managers first.
"""

import os
import stat
import tempfile
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from rich.console import Console

from .. import __version__
from ..errors import AbortError, DotstrapError, PackageError
from ..utils.logger import collect_warnings, get_logger, WarningCollector
from ..utils.platform import platform_detector, PlatformDetector
from ..utils.prompt import is_interactive, Prompter
from ..utils.shell import CommandError, run_command
from .apt_repos import AptRepoManager, select_repositories
from .download import ArchiveDownloader, SourceFetcher
from .packages import (
    AptInstaller, AptReport, BREW_GROUPS, BrewManager,
    group_entries, parse_brewfile, resolve_aptfiles,
)
from .settings import InstallerSettings
from .sync import backup_timestamp, fix_ssh_permissions, SyncManager, SyncResult

OVERWRITE_LIST_LIMIT = 15
OVERWRITE_PREVIEW = 10

DEBIAN_HINT = "Debian/Ubuntu hint: install packages with 'dotstrap apt'"

NEXT_STEPS = (
    "Start a new shell or run: source ~/.bash_profile",
    "Create ~/.extra for machine-specific settings (not tracked by git)",
    "Customize ~/.path for additional PATH entries",
)


def format_overwrites(overwrites: Sequence[str]) -> List[str]:
    """Lines listing files about to be overwritten, shortened past the limit."""
    if len(overwrites) <= OVERWRITE_LIST_LIMIT:
        return [f"    {path}" for path in overwrites]

    lines = [f"    {path}" for path in overwrites[:OVERWRITE_PREVIEW]]
    lines.append(f"    ... and {len(overwrites) - OVERWRITE_PREVIEW} more")
    return lines


def format_brew_plan(brewfile: Path) -> List[str]:
    """Grouped Brewfile entries for the dry-run preview."""
    groups = group_entries(parse_brewfile(brewfile.read_text(encoding='utf-8')))
    lines = []
    for kind, title in list(BREW_GROUPS) + [('other', 'Other')]:
        items = groups[kind]
        if not items:
            continue
        lines.append(f"  {title} ({len(items)}):")
        lines += [f"    - {item}" for item in items]
    return lines


def install_apt_packages(
    apt_dir: Path,
    files: Sequence[str] = (),
    desktop: bool = False,
    setup_repos: bool = False,
    apt: Optional[AptInstaller] = None,
    repo_manager: Optional[AptRepoManager] = None,
    environ: Optional[dict] = None
) -> AptReport:
    """
    Install Aptfile packages, optionally adding the external repositories first.

    Raises:
        PackageError: if no Aptfile can be found or apt-get is missing
    """
    aptfiles = resolve_aptfiles(apt_dir, explicit=files, desktop=desktop, environ=environ)

    if apt is None:
        apt = AptInstaller()
    apt.check_available()

    if setup_repos:
        if repo_manager is None:
            repo_manager = AptRepoManager()
        repo_manager.setup_all(select_repositories([], include_all=True))

    apt.update()
    return apt.install_from_files(aptfiles)


class Installer:
    """Downloads the dotfiles repository and installs it into the home directory."""

    def __init__(
        self,
        settings: InstallerSettings,
        console: Optional[Console] = None,
        prompter: Optional[Prompter] = None,
        detector: PlatformDetector = platform_detector,
        fetcher: Optional[SourceFetcher] = None,
        brew: Optional[BrewManager] = None,
        runner: Callable = run_command,
        interactive: Optional[bool] = None
    ):
        self.logger = get_logger(f"{__name__}.Installer")
        self.settings = settings
        self.console = console or Console(stderr=True)
        self.interactive = is_interactive() if interactive is None else interactive
        self.prompter = prompter or Prompter(
            force=settings.force, interactive=self.interactive, console=self.console
        )
        self.detector = detector
        self.fetcher = fetcher or SourceFetcher(
            settings, ArchiveDownloader(show_progress=self.interactive, console=self.console)
        )
        self.brew = brew or BrewManager(detector=detector, runner=runner)
        self.run_command = runner

        # Fixed once so every backup of this run shares a suffix
        self.timestamp = backup_timestamp()
        self.ssh_synced = False
        self.stats = ""

    @property
    def home(self) -> Path:
        return self.settings.home

    def run(self) -> int:
        """
        Run the whole installation.

        Returns:
            Process exit code: 1 in strict mode when warnings were logged, else 0
        """
        with collect_warnings() as collector:
            return self._run(collector)

    def _run(self, collector: WarningCollector) -> int:
        self.print_banner()
        self.print_plan()

        if not self.prompter.confirm("Continue with installation?", default=True):
            self.logger.info("Installation cancelled")
            return 0

        self.check_requirements()
        self.offer_homebrew()

        with tempfile.TemporaryDirectory(prefix='dotstrap-') as tmp:
            source_dir = self.fetcher.fetch(Path(tmp))
            if not source_dir.is_dir():
                raise DotstrapError("Failed to locate downloaded dotfiles")

            manager = SyncManager(source_dir, self.home, self.settings.exclude)
            self.check_overwrites(manager)
            self.sync(manager)

            if self.settings.dry_run:
                self.print_dry_run_epilogue(source_dir)
                return 0

        self.fix_ssh_permissions()
        self.run_brew_bundle()
        self.apply_macos_defaults()
        return self.print_postinstall(collector.messages)

    def print_banner(self):
        self.console.print()
        self.console.print(f"[bold]Dotfiles Installer[/bold] v{__version__}")
        self.console.print(f"Repository: [blue]{self.settings.repo_label}[/blue]")
        self.console.print(f"Branch: [blue]{self.settings.branch}[/blue]")
        self.console.print()

    def print_plan(self):
        self.logger.info("This will:")
        self.console.print("  - Download dotfiles to a temporary directory")
        self.console.print("  - Sync configuration files to your home directory")
        if not self.settings.no_brew:
            self.console.print("  - Install Homebrew packages (optional)")
        if self.settings.macos:
            self.console.print("  - Apply macOS system defaults")
        self.console.print()

        if self.settings.dry_run:
            self.console.print("[yellow]DRY RUN MODE - No changes will be made[/yellow]")
            self.console.print()

    def check_requirements(self):
        """Abort when a required external command is missing."""
        required = ['rsync']
        if self.settings.source == 'git':
            required.append('git')

        missing = [cmd for cmd in required if not self.detector.has_command(cmd)]
        if missing:
            raise DotstrapError(f"Missing required commands: {' '.join(missing)}")

    def offer_homebrew(self):
        """On macOS without brew, offer to install it before anything else."""
        if not self.detector.is_macos or self.brew.available:
            return

        if self.settings.dry_run:
            self.logger.info("Dry run: skipping Homebrew installation")
        elif not self.settings.no_brew and self.prompter.confirm_optional(
            "Homebrew is not installed. Install it now?", default=True
        ):
            self.brew.install_homebrew()
        else:
            self.logger.info("Skipping Homebrew installation")

    def check_overwrites(self, manager: SyncManager):
        """
        Show which files in the home directory are about to be replaced and ask
        before going on.

        Raises:
            AbortError: if the user declines
        """
        overwrites = manager.find_overwrites()
        self.ssh_synced = manager.has_ssh

        if not overwrites:
            self.logger.info("No existing files will be overwritten")
            return

        self.console.print()
        self.console.print(f"[yellow]{len(overwrites)} file(s) will be overwritten:[/yellow]")
        for line in format_overwrites(overwrites):
            self.console.print(line, markup=False, highlight=False)
        self.console.print()

        if not self.settings.backup_dir:
            self.logger.info("Tip: Use --backup <dir> to backup existing files")
            self.console.print()

        if self.settings.force:
            self.logger.info("Proceeding (--force specified)")
            return

        if not self.prompter.confirm("Proceed with overwriting these files?", default=True):
            raise AbortError("Installation cancelled by user")

    def sync(self, manager: SyncManager) -> SyncResult:
        verbose = self.interactive or self.settings.dry_run
        result = manager.sync(
            dry_run=self.settings.dry_run,
            verbose=verbose,
            backup_dir=self.settings.backup_dir,
            timestamp=self.timestamp
        )

        if verbose and result.output:
            self.console.print(result.output.rstrip('\n'), markup=False, highlight=False)
            self.console.print()

        if not result.dry_run:
            self.stats = result.stats
            self.logger.success("Dotfiles synced successfully!")
        return result

    def fix_ssh_permissions(self):
        if not self.ssh_synced:
            return
        if fix_ssh_permissions(self.home / '.ssh'):
            self.logger.info("SSH directory permissions set (700 for dir, 600 for files)")

    def _skip_brew_reason(self) -> Optional[str]:
        if self.settings.no_brew:
            return "Skipping Homebrew bundle (DOTFILES_NO_BREW=1)"
        if not self.detector.is_macos:
            return "Skipping Homebrew bundle on non-macOS"
        return None

    def run_brew_bundle(self):
        reason = self._skip_brew_reason()
        if reason:
            self.logger.info(reason)
            if not self.settings.no_brew and self.detector.is_linux:
                self.logger.info(DEBIAN_HINT)
            return

        if not self.brew.available:
            self.logger.warning("Homebrew not found, skipping bundle installation")
            return

        brewfile = self.home / 'Brewfile'
        if not brewfile.is_file():
            self.logger.warning("No Brewfile found in home directory, skipping bundle")
            return

        if not self.prompter.confirm_optional("Install Homebrew packages from Brewfile?", default=True):
            self.logger.info("Skipping Homebrew bundle")
            return

        self.logger.info("Running Homebrew bundle...")
        if self.brew.bundle(brewfile):
            self.logger.success("Homebrew packages installed!")

    def print_brew_plan(self, brewfile: Path):
        if self.settings.no_brew:
            self.logger.info("Skipping Homebrew bundle preview (DOTFILES_NO_BREW=1)")
            return

        if not brewfile.is_file():
            self.logger.warning(f"No Brewfile found at {brewfile}, skipping Homebrew preview")
            return

        self.logger.info("Homebrew bundle preview (dry run)")
        for line in format_brew_plan(brewfile):
            self.console.print(line, markup=False, highlight=False)

    def apply_macos_defaults(self):
        if not self.settings.macos:
            return

        if not self.detector.is_macos:
            self.logger.warning("macOS defaults can only be applied on macOS")
            return

        script = self.home / '.macos'
        if not script.is_file():
            self.logger.warning("No .macos file found, skipping system defaults")
            return

        if not self.prompter.confirm_optional("Apply macOS system defaults? (requires sudo)", default=False):
            self.logger.info("Skipping macOS defaults")
            return

        self.logger.info("Applying macOS defaults...")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        try:
            self.run_command([str(script)], capture=False)
        except CommandError:
            self.logger.warning("Some macOS defaults may have failed to apply")
            return
        self.logger.success("macOS defaults applied! Some changes require a logout/restart.")

    def print_postinstall(self, warnings: Sequence[str]) -> int:
        self.console.print()
        self.logger.success("Installation complete!")

        if self.stats:
            self.console.print()
            self.console.print(self.stats, markup=False, highlight=False)

        if warnings:
            self.console.print()
            self.console.print("[yellow]Warnings during installation:[/yellow]")
            for warning in warnings:
                self.console.print(f"  - {warning}", markup=False, highlight=False)

        self.console.print()
        self.logger.info("Next steps:")
        for number, step in enumerate(NEXT_STEPS, 1):
            self.console.print(f"  {number}. {step}")
        self.console.print()
        if self.detector.is_macos and not self.settings.macos:
            self.console.print("  For macOS system defaults, run: ~/.macos")
            self.console.print()

        self.console.print(f"Installed from: [blue]{self.settings.repo_label}@{self.settings.branch}[/blue]")
        self.console.print(f"Installer version: [blue]{__version__}[/blue]")

        if self.settings.strict and warnings:
            self.console.print()
            self.logger.error("Exiting with error due to warnings (--strict mode)")
            return 1
        return 0

    def print_dry_run_epilogue(self, source_dir: Path):
        self.console.print()
        if self.detector.is_macos:
            self.print_brew_plan(source_dir / 'Brewfile')
        else:
            self.logger.info("Dry run: skipping Homebrew preview on non-macOS")
            if self.detector.is_linux:
                self.logger.info(DEBIAN_HINT)
        self.console.print()
        self.logger.info("Dry run complete. No changes were made.")
        self.console.print("Run without --dry-run to apply changes.")


class Bootstrapper:
    """Installs a local dotfiles checkout, package managers first."""

    def __init__(
        self,
        settings: InstallerSettings,
        source_dir: Path,
        console: Optional[Console] = None,
        prompter: Optional[Prompter] = None,
        detector: PlatformDetector = platform_detector,
        brew: Optional[BrewManager] = None,
        apt: Optional[AptInstaller] = None,
        repo_manager: Optional[AptRepoManager] = None,
        runner: Callable = run_command
    ):
        self.logger = get_logger(f"{__name__}.Bootstrapper")
        self.settings = settings
        self.source_dir = Path(source_dir).resolve()
        self.console = console or Console(stderr=True)
        self.prompter = prompter or Prompter(force=settings.force, console=self.console)
        self.detector = detector
        self.brew = brew or BrewManager(detector=detector, runner=runner)
        self.apt = apt or AptInstaller(detector=detector, runner=runner)
        self.repo_manager = repo_manager
        self.run_command = runner

    def run(self) -> int:
        if not self.detector.has_command('rsync'):
            raise DotstrapError("rsync is required")

        if not self.prompter.confirm_optional(
            "This may overwrite existing files in your home directory. Proceed?", default=False
        ):
            self.console.print("Aborted.")
            return 0

        self.setup_brew()
        self.setup_apt()
        result = self.sync()

        if result.dry_run:
            self.console.print("(dry-run only; no files changed)")
            return 0

        self.run_macos_script()
        self.console.print("Sync complete. Reload your shell or run: source ~/.bash_profile")
        return 0

    def setup_brew(self):
        if self.settings.no_brew:
            return
        if self.settings.dry_run:
            self.logger.info("Skipping Homebrew setup because --dry-run was requested")
            return

        brewfile = self.source_dir / 'Brewfile'
        if not brewfile.is_file():
            self.logger.warning("Brewfile not found; skipping Homebrew bundle.")
            return
        if not self.brew.available:
            self.logger.warning("Homebrew not installed; skipping Homebrew bundle.")
            return

        self.logger.info("Running Homebrew bundle...")
        try:
            self.brew.setup(brewfile)
        except CommandError as e:
            raise PackageError(f"Homebrew setup failed: {e}")

    def setup_apt(self):
        if self.settings.no_apt:
            return
        if self.settings.dry_run:
            self.logger.info("Skipping Aptfile packages because --dry-run was requested")
            return
        if not self.detector.is_debian:
            return

        self.logger.info("Installing Aptfile packages...")
        install_apt_packages(
            self.source_dir,
            desktop=self.settings.apt_desktop,
            setup_repos=self.settings.apt_setup_repos,
            apt=self.apt,
            repo_manager=self.repo_manager
        )

    def sync(self) -> SyncResult:
        manager = SyncManager(self.source_dir, self.settings.home, self.settings.exclude)
        result = manager.sync(
            dry_run=self.settings.dry_run,
            verbose=True,
            backup_dir=self.settings.backup_dir
        )
        if result.output:
            self.console.print(result.output.rstrip('\n'), markup=False, highlight=False)
        return result

    def run_macos_script(self):
        if not self.settings.macos:
            return

        script = self.source_dir / '.macos'
        if not script.is_file():
            self.logger.warning(".macos not found; skipping macOS defaults.")
            return

        self.logger.info("Running .macos (may prompt for sudo)...")
        args = [str(script)] if os.access(script, os.X_OK) else ['bash', str(script)]
        self.run_command(args, capture=False)
