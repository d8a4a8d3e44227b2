#!/usr/bin/env python3
"""
External apt repositories for dotstrap.

Some Aptfile packages live outside the distribution archive. This module adds
their signing keys and source lists, skipping repositories that are already
configured.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import requests

from ..errors import PackageError
from ..utils.logger import get_logger
from ..utils.platform import platform_detector, PlatformDetector
from ..utils.shell import CommandError, run_command, sudo_prefix
from .download import ArchiveDownloader

KEYRING_DIR = Path('/usr/share/keyrings')
SOURCES_DIR = Path('/etc/apt/sources.list.d')

PREREQUISITES = ('ca-certificates', 'curl', 'gnupg')


@dataclass(frozen=True)
class AptRepository:
    """
    An external apt repository.

    ``source`` is either a template for the list line, formatted with
    ``keyring``, ``arch`` and ``codename``, or, when ``source_url`` is set,
    ignored in favour of the list file published at that URL.
    """
    name: str
    title: str
    keyring: str
    list_file: str
    marker: str
    key_url: str
    source: str = ''
    source_url: str = ''

    @property
    def keyring_path(self) -> Path:
        return KEYRING_DIR / self.keyring

    @property
    def list_path(self) -> Path:
        return SOURCES_DIR / self.list_file

    def render_source(self, arch: str, codename: str) -> str:
        return self.source.format(keyring=self.keyring_path, arch=arch, codename=codename) + '\n'


REPOSITORIES: Dict[str, AptRepository] = {
    'caddy': AptRepository(
        name='caddy',
        title='Caddy',
        keyring='caddy-stable-archive-keyring.gpg',
        list_file='caddy-stable.list',
        marker='caddy/stable',
        key_url='https://dl.cloudsmith.io/public/caddy/stable/gpg.key',
        source_url='https://dl.cloudsmith.io/public/caddy/stable/debian.deb.txt',
    ),
    'azure-cli': AptRepository(
        name='azure-cli',
        title='Azure CLI',
        keyring='microsoft-archive-keyring.gpg',
        list_file='azure-cli.list',
        marker='azure-cli',
        key_url='https://packages.microsoft.com/keys/microsoft.asc',
        source='deb [arch={arch} signed-by={keyring}] https://packages.microsoft.com/repos/azure-cli/ {codename} main',
    ),
    'postgres': AptRepository(
        name='postgres',
        title='PostgreSQL',
        keyring='postgresql.gpg',
        list_file='pgdg.list',
        marker='apt.postgresql.org',
        key_url='https://www.postgresql.org/media/keys/ACCC4CF8.asc',
        source='deb [signed-by={keyring}] https://apt.postgresql.org/pub/repos/apt/ {codename}-pgdg main',
    ),
    'ghostty': AptRepository(
        name='ghostty',
        title='Ghostty',
        keyring='ghostty.gpg',
        list_file='ghostty.list',
        marker='debian.griffo.io',
        key_url='https://debian.griffo.io/EA0F721D231FDD3A0A17B9AC7808B4DD62C41256.asc',
        source='deb [arch={arch} signed-by={keyring}] https://debian.griffo.io/apt {codename} main',
    ),
}

# Ghostty is a desktop package and has to be asked for by name
CORE_REPOSITORIES = ('caddy', 'azure-cli', 'postgres')


def select_repositories(names: Sequence[str], include_all: bool = False) -> List[AptRepository]:
    """Map requested names to repositories; nothing requested means the core set."""
    selected = list(CORE_REPOSITORIES) if include_all else []
    for name in names:
        if name not in REPOSITORIES:
            raise PackageError(f"Unknown repository: {name}")
        if name not in selected:
            selected.append(name)
    if not selected:
        selected = list(CORE_REPOSITORIES)
    return [REPOSITORIES[name] for name in selected]


class AptRepoManager:
    """Configures external apt repositories."""

    def __init__(
        self,
        detector: PlatformDetector = platform_detector,
        runner: Callable = run_command,
        downloader: Optional[ArchiveDownloader] = None
    ):
        self.logger = get_logger(f"{__name__}.AptRepoManager")
        self.detector = detector
        self.run = runner
        self.downloader = downloader or ArchiveDownloader()

    def check_supported(self):
        if not self.detector.has_os_release:
            raise PackageError("Unsupported OS: /etc/os-release not found")
        if not self.detector.has_command('apt-get'):
            raise PackageError("apt-get not found; this command is for Debian/Ubuntu.")

    def ensure_prerequisites(self):
        """Install ca-certificates, curl and gnupg when dpkg does not know them."""
        missing = [
            package for package in PREREQUISITES
            if self.run(['dpkg', '-s', package], check=False).returncode != 0
        ]
        if not missing:
            return

        try:
            self.run(sudo_prefix() + ['apt-get', 'update'], capture=False)
        except CommandError:
            self.logger.debug("apt-get update failed before installing prerequisites")
        self.run(sudo_prefix() + ['apt-get', 'install', '-y', *missing], capture=False)

    def codename(self) -> str:
        codename = self.detector.codename
        if not codename and self.detector.has_command('lsb_release'):
            try:
                codename = (self.run(['lsb_release', '-cs']).stdout or '').strip()
            except CommandError:
                codename = ''
        if not codename:
            raise PackageError("Unable to determine OS codename.")
        return codename

    def architecture(self) -> str:
        try:
            arch = (self.run(['dpkg', '--print-architecture']).stdout or '').strip()
        except CommandError:
            arch = ''
        return arch or 'amd64'

    @staticmethod
    def is_configured(repo: AptRepository) -> bool:
        try:
            return repo.marker in repo.list_path.read_text(encoding='utf-8')
        except OSError:
            return False

    def setup(self, repo: AptRepository, codename: str, arch: str) -> bool:
        """
        Add one repository.

        Returns:
            False if it was already configured, True if it was added
        """
        if self.is_configured(repo):
            self.logger.info(f"{repo.title} repo already configured")
            return False

        try:
            key = self.downloader.fetch_bytes(repo.key_url)
            if repo.source_url:
                source = self.downloader.fetch_text(repo.source_url)
            else:
                source = repo.render_source(arch=arch, codename=codename)
        except requests.RequestException as e:
            raise PackageError(f"Failed to download {repo.title} repository data: {e}")

        self.run(sudo_prefix() + ['gpg', '--dearmor', '--yes', '-o', str(repo.keyring_path)], input=key)
        self.run(sudo_prefix() + ['tee', str(repo.list_path)], input=source)

        self.logger.info(f"{repo.title} repo configured")
        return True

    def setup_all(self, repositories: Sequence[AptRepository]) -> List[str]:
        """Configure the given repositories and return the names that were added."""
        self.check_supported()
        self.ensure_prerequisites()

        codename = self.codename()
        arch = self.architecture()

        added = []
        for repo in repositories:
            if self.setup(repo, codename=codename, arch=arch):
                added.append(repo.name)

        self.logger.info("Done. Run apt-get update to refresh package lists.")
        return added
