#!/usr/bin/env python3
"""
Source download for dotstrap.

This module fetches the dotfiles tree, either as a GitHub tarball over HTTP
or as a shallow Git clone, and unpacks archives into a working directory.
"""

import fnmatch
import tarfile
import zipfile
from pathlib import Path
from typing import Iterable, Optional

import requests
from git import Repo, GitCommandError
from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn

from ..errors import DownloadError
from ..utils.logger import get_logger
from .settings import InstallerSettings

CONNECT_TIMEOUT = 10
READ_TIMEOUT = 120
CHUNK_SIZE = 64 * 1024


def _is_within(base: Path, target: Path) -> bool:
    try:
        target.resolve().relative_to(base.resolve())
        return True
    except ValueError:
        return False


def extract_tarball(archive: Path, dest: Path) -> None:
    """Extract a gzip tarball, refusing members that escape ``dest``."""
    try:
        with tarfile.open(archive, 'r:gz') as tar:
            members = tar.getmembers()
            for member in members:
                if member.issym() or member.islnk():
                    link_target = dest / Path(member.name).parent / member.linkname
                    if Path(member.linkname).is_absolute() or not _is_within(dest, link_target):
                        raise DownloadError(f"Archive member links outside the destination: {member.name}")
                if not _is_within(dest, dest / member.name):
                    raise DownloadError(f"Archive member escapes the destination: {member.name}")
            tar.extractall(dest, members=members)
    except (tarfile.TarError, OSError) as e:
        raise DownloadError(f"Failed to extract dotfiles archive: {e}")


def extract_zip(archive: Path, dest: Path, exclude: Iterable[str] = ()) -> int:
    """
    Extract a zip archive, overwriting existing files.

    Args:
        archive: Zip file to read
        dest: Directory to extract into
        exclude: fnmatch patterns matched against member names and basenames

    Returns:
        Number of files extracted
    """
    exclude = list(exclude)
    extracted = 0
    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                name = info.filename
                basename = name.rsplit('/', 1)[-1]
                if any(fnmatch.fnmatch(name, p) or fnmatch.fnmatch(basename, p) for p in exclude):
                    continue
                if not _is_within(dest, dest / name):
                    raise DownloadError(f"Archive member escapes the destination: {name}")
                zf.extract(info, dest)
                if not info.is_dir():
                    extracted += 1
    except (zipfile.BadZipFile, OSError) as e:
        raise DownloadError(f"Failed to extract {archive.name}: {e}")
    return extracted


def find_single_directory(parent: Path) -> Path:
    """Return the only directory directly below ``parent``."""
    directories = [p for p in parent.iterdir() if p.is_dir()]
    if not directories:
        raise DownloadError("No directory found in downloaded archive")
    if len(directories) > 1:
        raise DownloadError("Unexpected: multiple directories in archive")
    return directories[0]


class ArchiveDownloader:
    """Downloads files over HTTP with timeouts and an optional progress bar."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        show_progress: bool = False,
        console: Optional[Console] = None
    ):
        self.logger = get_logger(f"{__name__}.ArchiveDownloader")
        self.session = session or requests.Session()
        self.show_progress = show_progress
        self.console = console or Console(stderr=True)

    def download(self, url: str, dest: Path) -> Path:
        """
        Stream ``url`` into ``dest``.

        Raises:
            requests.HTTPError: for non-2xx responses
            requests.RequestException: for connection problems
        """
        with self.session.get(url, stream=True, timeout=(CONNECT_TIMEOUT, READ_TIMEOUT)) as response:
            response.raise_for_status()
            total = int(response.headers.get('content-length') or 0) or None

            with open(dest, 'wb') as f:
                if self.show_progress:
                    with Progress(
                        TextColumn("[progress.description]{task.description}"),
                        BarColumn(),
                        DownloadColumn(),
                        console=self.console,
                        transient=True
                    ) as progress:
                        task = progress.add_task(f"Downloading {dest.name}", total=total)
                        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                            f.write(chunk)
                            progress.advance(task, len(chunk))
                else:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        f.write(chunk)

        return dest

    def fetch_text(self, url: str) -> str:
        """GET a small text resource such as an install script."""
        response = self.session.get(url, timeout=(CONNECT_TIMEOUT, READ_TIMEOUT))
        response.raise_for_status()
        return response.text

    def fetch_bytes(self, url: str) -> bytes:
        response = self.session.get(url, timeout=(CONNECT_TIMEOUT, READ_TIMEOUT))
        response.raise_for_status()
        return response.content


class SourceFetcher:
    """Puts a copy of the dotfiles repository into a working directory."""

    def __init__(self, settings: InstallerSettings, downloader: Optional[ArchiveDownloader] = None):
        self.logger = get_logger(f"{__name__}.SourceFetcher")
        self.settings = settings
        self.downloader = downloader or ArchiveDownloader()

    def fetch(self, workdir: Path) -> Path:
        """Fetch the configured source and return the directory holding it."""
        if self.settings.source == 'git':
            return self.clone(workdir)
        return self.fetch_tarball(workdir)

    def fetch_tarball(self, workdir: Path) -> Path:
        url = self.settings.tarball_url
        archive = workdir / 'archive.tar.gz'

        self.logger.info(f"Downloading dotfiles from {url}...")
        try:
            self.downloader.download(url, archive)
        except requests.HTTPError as e:
            raise DownloadError(self._describe_http_error(e.response.status_code if e.response is not None else 0))
        except (requests.ConnectionError, requests.Timeout):
            raise DownloadError("Network error: could not connect to GitHub. Check your internet connection.")
        except requests.RequestException as e:
            raise DownloadError(f"Failed to download dotfiles: {e}")

        if not archive.exists() or archive.stat().st_size == 0:
            raise DownloadError("Downloaded archive is empty")

        self.logger.info("Extracting archive...")
        extract_dir = workdir / 'source'
        extract_dir.mkdir()
        extract_tarball(archive, extract_dir)
        archive.unlink()

        # GitHub wraps the tree in a repo-branch directory
        return find_single_directory(extract_dir)

    def _describe_http_error(self, status: int) -> str:
        if status == 404:
            return (
                "Repository or branch not found (404). "
                f"Check --user='{self.settings.github_user}', "
                f"--repo='{self.settings.github_repo}', "
                f"--branch='{self.settings.branch}'"
            )
        return f"Failed to download dotfiles (HTTP {status}). Check your network connection."

    def clone(self, workdir: Path) -> Path:
        """Shallow-clone the repository at the configured branch."""
        url = self.settings.git_url
        target = workdir / self.settings.github_repo

        self.logger.info(f"Cloning {url} ({self.settings.branch})...")
        try:
            Repo.clone_from(url, target, branch=self.settings.branch, depth=1)
        except GitCommandError as e:
            raise DownloadError(f"Failed to clone {url}: {e.stderr.strip() if e.stderr else e}")

        return target
