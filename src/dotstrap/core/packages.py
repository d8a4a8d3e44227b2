#!/usr/bin/env python3
"""
Package manifests for dotstrap.

This module reads the declarative package lists kept next to the dotfiles,
Debian ``Aptfile``s and Homebrew ``Brewfile``s, and hands them to apt-get
and brew.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import requests

from ..errors import PackageError
from ..utils.logger import get_logger
from ..utils.platform import platform_detector, PlatformDetector
from ..utils.shell import CommandError, run_command, sudo_prefix
from .download import ArchiveDownloader

HOMEBREW_INSTALL_URL = 'https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh'
HOMEBREW_PREFIXES = (Path('/opt/homebrew/bin'), Path('/usr/local/bin'))

BREWFILE_LINE = re.compile(r'''^([a-zA-Z_]+)\s+(?:"([^"]+)"|'([^']+)')''')

BREW_GROUPS = (
    ('tap', 'Taps'),
    ('brew', 'Formulae'),
    ('cask', 'Casks'),
    ('mas', 'Mac App Store'),
)


# Aptfile

def parse_aptfile(text: str) -> List[str]:
    """One package per line, ``#`` starts a comment."""
    packages = []
    for line in text.splitlines():
        line = line.split('#', 1)[0].strip()
        if line:
            packages.append(line)
    return packages


def resolve_aptfiles(
    apt_dir: Path,
    explicit: Sequence[str] = (),
    desktop: bool = False,
    environ: Optional[Dict[str, str]] = None
) -> List[Path]:
    """
    Decide which Aptfiles to install from.

    ``APTFILES`` (space separated) replaces the explicit list, ``APTFILE``
    is appended to it. Without any, ``Aptfile.core`` (or ``Aptfile``) is
    used, plus ``Aptfile.desktop`` when desktop packages are wanted.
    """
    if environ is None:
        environ = dict(os.environ)

    files = [Path(f) for f in explicit]
    if environ.get('APTFILES'):
        files = [Path(f) for f in environ['APTFILES'].split()]
    if environ.get('APTFILE'):
        files.append(Path(environ['APTFILE']))

    if not files:
        if (apt_dir / 'Aptfile.core').is_file():
            files.append(apt_dir / 'Aptfile.core')
        elif (apt_dir / 'Aptfile').is_file():
            files.append(apt_dir / 'Aptfile')
        if desktop and (apt_dir / 'Aptfile.desktop').is_file():
            files.append(apt_dir / 'Aptfile.desktop')

    if not files:
        raise PackageError("No Aptfile found (expected Aptfile.core or Aptfile).")
    return files


@dataclass
class AptReport:
    """What an Aptfile run did."""
    installed: List[str] = field(default_factory=list)
    already_installed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    missing_files: List[Path] = field(default_factory=list)


class AptInstaller:
    """Installs Aptfile packages with apt-get, skipping what dpkg knows."""

    def __init__(self, detector: PlatformDetector = platform_detector, runner: Callable = run_command):
        self.logger = get_logger(f"{__name__}.AptInstaller")
        self.detector = detector
        self.run = runner

    def check_available(self):
        if not self.detector.has_command('apt-get'):
            raise PackageError("apt-get not found; this command is for Debian/Ubuntu.")

    def is_installed(self, package: str) -> bool:
        try:
            return self.run(['dpkg', '-s', package], check=False).returncode == 0
        except CommandError:
            return False

    def update(self):
        try:
            self.run(sudo_prefix() + ['apt-get', 'update'], capture=False)
        except CommandError:
            self.logger.warning("apt-get update failed, continuing anyway...")

    def install_package(self, package: str) -> bool:
        try:
            self.run(sudo_prefix() + ['apt-get', 'install', '-y', package], capture=False)
            return True
        except CommandError:
            self.logger.warning(f"failed to install {package}")
            return False

    def install_from_files(self, files: Sequence[Path]) -> AptReport:
        """Install every package listed in ``files``, in order."""
        report = AptReport()
        for aptfile in files:
            if not aptfile.is_file():
                self.logger.warning(f"Aptfile not found at {aptfile}")
                report.missing_files.append(aptfile)
                continue

            for package in parse_aptfile(aptfile.read_text(encoding='utf-8')):
                if self.is_installed(package):
                    self.logger.info(f"Already installed: {package}")
                    report.already_installed.append(package)
                elif self.install_package(package):
                    report.installed.append(package)
                else:
                    report.failed.append(package)
        return report


# Brewfile

@dataclass(frozen=True)
class BrewEntry:
    """One ``kind "name"`` line of a Brewfile."""
    kind: str
    name: str


def parse_brewfile(text: str) -> List[BrewEntry]:
    entries = []
    for line in text.splitlines():
        line = line.lstrip()
        if not line or line.startswith('#'):
            continue
        match = BREWFILE_LINE.match(line)
        if not match:
            continue
        entries.append(BrewEntry(match.group(1), match.group(2) or match.group(3)))
    return entries


def group_entries(entries: Sequence[BrewEntry]) -> Dict[str, List[str]]:
    """Bucket entries by kind; unknown kinds go to "other" as kind:name."""
    groups: Dict[str, List[str]] = {kind: [] for kind, _title in BREW_GROUPS}
    groups['other'] = []
    for entry in entries:
        if entry.kind in groups and entry.kind != 'other':
            groups[entry.kind].append(entry.name)
        else:
            groups['other'].append(f"{entry.kind}:{entry.name}")
    return groups


@dataclass
class DriftReport:
    """Differences between a Brewfile and what Homebrew has installed."""
    brewfile: Path
    extra: Dict[str, List[str]] = field(default_factory=dict)
    missing: Dict[str, List[str]] = field(default_factory=dict)

    SECTIONS = ('formulae', 'casks', 'taps')

    @property
    def has_drift(self) -> bool:
        return any(self.extra.values()) or any(self.missing.values())

    def render(self) -> str:
        lines = [f"# Homebrew drift against {self.brewfile}"]
        for key in self.SECTIONS:
            for title, items in (
                (f"Extra {key} (installed but not tracked)", self.extra.get(key, [])),
                (f"Missing {key} (tracked but not installed)", self.missing.get(key, [])),
            ):
                lines += ['', f"## {title}"]
                lines += items if items else ['(none)']
        return '\n'.join(lines)


class BrewManager:
    """Runs Homebrew against a Brewfile."""

    def __init__(
        self,
        detector: PlatformDetector = platform_detector,
        runner: Callable = run_command,
        downloader: Optional[ArchiveDownloader] = None
    ):
        self.logger = get_logger(f"{__name__}.BrewManager")
        self.detector = detector
        self.run = runner
        self.downloader = downloader or ArchiveDownloader()

    @property
    def available(self) -> bool:
        return self.detector.has_command('brew')

    def install_homebrew(self) -> bool:
        """Install Homebrew on macOS with the official script."""
        if self.available:
            self.logger.info("Homebrew is already installed")
            return True

        if not self.detector.is_macos:
            self.logger.warning("Homebrew installation skipped (not macOS)")
            self.logger.info("On Linux, install packages manually or use your distro's package manager")
            return False

        self.logger.info("Installing Homebrew...")
        try:
            script = self.downloader.fetch_text(HOMEBREW_INSTALL_URL)
        except requests.RequestException as e:
            raise PackageError(f"Failed to download Homebrew installer: {e}")
        self.run(['/bin/bash', '-c', script], capture=False)

        # Make brew reachable for the rest of this run
        for prefix in HOMEBREW_PREFIXES:
            if (prefix / 'brew').is_file():
                os.environ['PATH'] = f"{prefix}{os.pathsep}{os.environ.get('PATH', '')}"
                break
        return self.available

    def update(self) -> bool:
        try:
            self.run(['brew', 'update'], capture=False)
            return True
        except CommandError:
            self.logger.warning("brew update failed, continuing anyway...")
            return False

    def bundle(self, brewfile: Path, extra_args: Sequence[str] = ()) -> bool:
        """``brew bundle install`` for the installer; failures are warnings."""
        self.update()
        try:
            self.run(['brew', 'bundle', 'install', f'--file={brewfile}', *extra_args], capture=False)
        except CommandError:
            self.logger.warning("Some Homebrew packages failed to install")
            return False

        try:
            self.run(['brew', 'cleanup'])
        except CommandError as e:
            self.logger.debug(f"brew cleanup failed: {e}")
        return True

    def setup(self, brewfile: Path, extra_args: Sequence[str] = ()):
        """
        Full Homebrew setup from a Brewfile: modern bash first, then the
        bundle with cleanup of anything not listed.

        Raises:
            PackageError: if the Brewfile is missing
            CommandError: if a brew step fails
        """
        if not brewfile.is_file():
            raise PackageError(f"Brewfile not found at {brewfile}")

        self.run(['brew', 'update'], capture=False)

        if self.run(['brew', 'list', '--formula', 'bash'], check=False).returncode != 0:
            self.run(['brew', 'install', 'bash'], capture=False)

        self.run(['brew', 'bundle', 'install', '--cleanup', f'--file={brewfile}', *extra_args], capture=False)
        self.run(['brew', 'autoremove'], capture=False)
        self.run(['brew', 'cleanup'], capture=False)

    def _list(self, args: Sequence[str]) -> List[str]:
        output = self.run(['brew', *args]).stdout or ''
        return sorted({line.strip() for line in output.splitlines() if line.strip()})

    def drift(self, brewfile: Path) -> DriftReport:
        """Compare the Brewfile with the installed formulae, casks and taps."""
        if not brewfile.is_file():
            raise PackageError(f"Brewfile not found at: {brewfile}")
        if not self.available:
            raise PackageError("Homebrew not installed.")

        groups = group_entries(parse_brewfile(brewfile.read_text(encoding='utf-8')))
        tracked = {
            'formulae': set(groups['brew']),
            'casks': set(groups['cask']),
            'taps': set(groups['tap']),
        }
        installed = {
            'formulae': set(self._list(['list', '--formula'])),
            'casks': set(self._list(['list', '--cask'])),
            'taps': set(self._list(['tap'])),
        }

        report = DriftReport(brewfile=brewfile)
        for key in tracked:
            report.extra[key] = sorted(installed[key] - tracked[key])
            report.missing[key] = sorted(tracked[key] - installed[key])
        return report
