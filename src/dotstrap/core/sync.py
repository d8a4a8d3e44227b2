#!/usr/bin/env python3
"""
Synchronization manager for dotstrap.

This module reconciles a dotfiles tree with the home directory: it finds the
files that would be overwritten, runs rsync with the shared exclusion list
and optional timestamped backups, and captures rsync's transfer statistics.
"""

import os
import re
import stat
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from ..errors import SyncError
from ..utils.logger import get_logger
from ..utils.path import resolve_dir
from ..utils.shell import CommandError, run_command

STATS_PATTERN = re.compile(
    r'Number of|Total file size|Total transferred|Literal data|Matched data'
)

SSH_DIR_MODE = 0o700
SSH_FILE_MODE = 0o600


class SyncStatus(Enum):
    """Synchronization status."""
    SUCCESS = "success"
    DRY_RUN = "dry_run"
    ERROR = "error"


class SyncResult:
    """Result of a synchronization run."""

    def __init__(self, dry_run: bool = False):
        self.status = SyncStatus.DRY_RUN if dry_run else SyncStatus.SUCCESS
        self.output = ""
        self.stats = ""
        self.backup_dir: Optional[Path] = None

    @property
    def dry_run(self) -> bool:
        return self.status == SyncStatus.DRY_RUN


def backup_timestamp(now: Optional[datetime] = None) -> str:
    """Timestamp used for backup suffixes, fixed once per run."""
    return (now or datetime.now()).strftime('%Y%m%d_%H%M%S')


def extract_stats(output: str) -> str:
    """Keep only rsync's summary lines."""
    return '\n'.join(line for line in output.splitlines() if STATS_PATTERN.search(line))


def squeeze_blank_lines(text: str) -> str:
    """Collapse runs of blank lines into one, like ``cat -s``."""
    return re.sub(r'\n\s*\n(\s*\n)+', '\n\n', text)


def fix_ssh_permissions(ssh_dir: Path) -> bool:
    """Restrict an .ssh directory to 0700 and every file below it to 0600."""
    if not ssh_dir.is_dir():
        return False

    os.chmod(ssh_dir, SSH_DIR_MODE)
    for root, _dirs, files in os.walk(ssh_dir):
        for name in files:
            path = Path(root) / name
            if path.is_symlink():
                continue
            try:
                os.chmod(path, SSH_FILE_MODE)
            except OSError:
                # Unreadable entries keep their mode
                continue
    return True


class SyncManager:
    """Reconciles a source tree with a target directory through rsync."""

    def __init__(
        self,
        source_dir: Path,
        target_dir: Path,
        excludes: Sequence[str],
        rsync: str = 'rsync'
    ):
        """
        Initialize sync manager.

        Args:
            source_dir: Directory holding the dotfiles
            target_dir: Directory receiving them, normally $HOME
            excludes: Relative paths that never leave the source tree
            rsync: rsync executable
        """
        self.logger = get_logger(f"{__name__}.SyncManager")
        self.source_dir = Path(source_dir)
        self.target_dir = Path(target_dir)
        self.excludes = list(excludes)
        self.rsync = rsync

    def is_excluded(self, relative: str) -> bool:
        """An entry is excluded when it is, or sits under, an excluded path."""
        return any(
            relative == exclude or relative.startswith(exclude.rstrip('/') + '/')
            for exclude in self.excludes
        )

    @property
    def has_ssh(self) -> bool:
        """Whether the source ships an .ssh directory."""
        return (self.source_dir / '.ssh').is_dir()

    def find_overwrites(self) -> List[str]:
        """
        List source files whose counterpart already exists in the target.

        Returns:
            Relative POSIX paths, sorted
        """
        overwrites = []
        for root, dirs, files in os.walk(self.source_dir):
            dirs.sort()
            for name in sorted(files):
                path = Path(root) / name
                if not stat.S_ISREG(path.lstat().st_mode):
                    continue
                relative = path.relative_to(self.source_dir).as_posix()
                if self.is_excluded(relative):
                    continue
                if (self.target_dir / relative).exists():
                    overwrites.append(relative)
        return overwrites

    def build_rsync_args(
        self,
        dry_run: bool = False,
        verbose: bool = False,
        backup_dir: Optional[Path] = None,
        backup_suffix: Optional[str] = None
    ) -> List[str]:
        """Assemble the rsync command line."""
        args = [self.rsync, '-ah', '--no-perms']

        if verbose:
            args += ['-v', '--stats']

        for exclude in self.excludes:
            if exclude == '.git':
                args.append('--exclude=.git/')
            else:
                args.append(f'--exclude={exclude}')

        if dry_run:
            args.append('--dry-run')

        if backup_dir is not None:
            args += ['--backup', f'--backup-dir={backup_dir}']
            if backup_suffix:
                args.append(f'--suffix={backup_suffix}')

        args += [f"{self.source_dir}/", f"{self.target_dir}/"]
        return args

    def prepare_backup_dir(self, backup_dir: str, cwd: Optional[Path] = None) -> Path:
        """Resolve and create the backup directory."""
        try:
            resolved = resolve_dir(backup_dir, home=self.target_dir, cwd=cwd)
        except FileNotFoundError as e:
            raise SyncError(str(e))

        resolved.mkdir(parents=True, exist_ok=True)
        return resolved

    def sync(
        self,
        dry_run: bool = False,
        verbose: bool = False,
        backup_dir: Optional[str] = None,
        timestamp: Optional[str] = None,
        cwd: Optional[Path] = None
    ) -> SyncResult:
        """
        Run rsync from the source tree into the target directory.

        Args:
            dry_run: Only report what would change
            verbose: Ask rsync for the file list and statistics
            backup_dir: Keep overwritten files here
            timestamp: Backup suffix timestamp; None means no suffix
            cwd: Directory relative backup paths are anchored on

        Returns:
            SyncResult carrying rsync's output and statistics
        """
        result = SyncResult(dry_run=dry_run)
        suffix = None

        if backup_dir:
            result.backup_dir = self.prepare_backup_dir(backup_dir, cwd=cwd)
            if timestamp:
                suffix = f".bak_{timestamp}"
                self.logger.info(f"Backing up overwritten files to: {result.backup_dir} (suffix: {suffix})")
            else:
                self.logger.info(f"Backing up overwritten files to: {result.backup_dir}")

        if dry_run:
            self.logger.info("Dry run mode - showing what would be synced...")

        self.logger.info(f"Syncing dotfiles to {self.target_dir}...")
        args = self.build_rsync_args(
            dry_run=dry_run,
            verbose=verbose,
            backup_dir=result.backup_dir,
            backup_suffix=suffix
        )

        try:
            completed = run_command(args)
        except CommandError as e:
            result.status = SyncStatus.ERROR
            raise SyncError(f"Rsync failed: {e.output or e}")

        result.output = squeeze_blank_lines(completed.stdout or '')
        if not dry_run and 'Number of' in result.output:
            result.stats = extract_stats(result.output)

        return result
