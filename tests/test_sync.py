#!/usr/bin/env python3
"""
Tests for the rsync-based synchronization manager.
"""

import os
import stat
import subprocess
import pytest
from datetime import datetime
from unittest.mock import patch

from dotstrap.core.settings import DEFAULT_EXCLUDES
from dotstrap.core.sync import (
    SyncManager,
    SyncStatus,
    backup_timestamp,
    extract_stats,
    fix_ssh_permissions,
    squeeze_blank_lines,
)
from dotstrap.errors import SyncError
from dotstrap.utils.shell import CommandError

RSYNC_OUTPUT = """\
sending incremental file list
.bashrc



Number of files: 4 (reg: 3, dir: 1)
Number of regular files transferred: 1
Total file size: 1.20K bytes
Total transferred file size: 20 bytes
Literal data: 20 bytes
Matched data: 0 bytes
sent 300 bytes  received 40 bytes
"""


@pytest.fixture
def manager(source_tree, home):
    return SyncManager(source_tree, home, DEFAULT_EXCLUDES)


def completed(output='', returncode=0):
    return subprocess.CompletedProcess(['rsync'], returncode, stdout=output)


class TestExclusions:
    """Test the exclusion rules."""

    def test_exact_and_nested(self, manager):
        assert manager.is_excluded('install.sh')
        assert manager.is_excluded('.git')
        assert manager.is_excluded('.git/HEAD')
        assert not manager.is_excluded('.bashrc')

    def test_prefix_is_not_a_parent(self, manager):
        """``.gitconfig`` shares a prefix with ``.git`` but is not under it."""
        assert not manager.is_excluded('.gitconfig')
        assert not manager.is_excluded('docs/README.md')


class TestFindOverwrites:
    """Test detection of files that would be replaced."""

    def test_nothing_to_overwrite(self, manager):
        assert manager.find_overwrites() == []

    def test_lists_existing_files(self, manager, home):
        (home / '.bashrc').write_text('old\n')
        (home / '.config' / 'git').mkdir(parents=True)
        (home / '.config' / 'git' / 'config').write_text('old\n')
        assert manager.find_overwrites() == ['.bashrc', '.config/git/config']

    def test_excluded_files_ignored(self, manager, home):
        (home / 'README.md').write_text('mine\n')
        (home / 'install.sh').write_text('mine\n')
        (home / '.git').mkdir()
        (home / '.git' / 'HEAD').write_text('mine\n')
        assert manager.find_overwrites() == []

    def test_symlinks_in_source_ignored(self, manager, source_tree, home):
        (source_tree / '.vimrc').symlink_to(source_tree / '.bashrc')
        (home / '.vimrc').write_text('old\n')
        assert manager.find_overwrites() == []

    def test_has_ssh(self, manager, source_tree):
        assert manager.has_ssh is False
        (source_tree / '.ssh').mkdir()
        assert manager.has_ssh is True


class TestRsyncArgs:
    """Test the rsync command line."""

    def test_basic(self, manager, source_tree, home):
        args = manager.build_rsync_args()
        assert args[:3] == ['rsync', '-ah', '--no-perms']
        assert '--exclude=.git/' in args
        assert '--exclude=.DS_Store' in args
        assert '--exclude=apt-repos.sh' in args
        assert '--dry-run' not in args
        assert '-v' not in args
        assert args[-2:] == [f"{source_tree}/", f"{home}/"]

    def test_verbose_dry_run(self, manager):
        args = manager.build_rsync_args(dry_run=True, verbose=True)
        assert args[3:5] == ['-v', '--stats']
        assert args.index('--dry-run') > args.index('--exclude=LICENSE-MIT.txt')

    def test_backup(self, manager, tmp_path):
        args = manager.build_rsync_args(backup_dir=tmp_path / 'bk', backup_suffix='.bak_20240101_120000')
        assert '--backup' in args
        assert f'--backup-dir={tmp_path / "bk"}' in args
        assert '--suffix=.bak_20240101_120000' in args

    def test_backup_without_suffix(self, manager, tmp_path):
        args = manager.build_rsync_args(backup_dir=tmp_path / 'bk')
        assert not any(arg.startswith('--suffix') for arg in args)


class TestSync:
    """Test running rsync."""

    @patch('dotstrap.core.sync.run_command')
    def test_success_collects_stats(self, mock_run, manager):
        mock_run.return_value = completed(RSYNC_OUTPUT)
        result = manager.sync(verbose=True)

        assert result.status == SyncStatus.SUCCESS
        assert result.stats.splitlines()[0] == 'Number of files: 4 (reg: 3, dir: 1)'
        assert 'sent 300 bytes' not in result.stats
        assert '\n\n\n' not in result.output

    @patch('dotstrap.core.sync.run_command')
    def test_dry_run_has_no_stats(self, mock_run, manager):
        mock_run.return_value = completed(RSYNC_OUTPUT)
        result = manager.sync(dry_run=True, verbose=True)

        assert result.dry_run is True
        assert result.stats == ''
        assert '--dry-run' in mock_run.call_args[0][0]

    @patch('dotstrap.core.sync.run_command')
    def test_failure(self, mock_run, manager):
        mock_run.side_effect = CommandError(['rsync'], 23, 'rsync error: some files could not be transferred')
        with pytest.raises(SyncError, match='Rsync failed: rsync error'):
            manager.sync()

    @patch('dotstrap.core.sync.run_command')
    def test_backup_dir_created_with_suffix(self, mock_run, manager, home):
        mock_run.return_value = completed()
        result = manager.sync(backup_dir='~/dotfiles-backup', timestamp='20240101_120000')

        assert result.backup_dir == home / 'dotfiles-backup'
        assert result.backup_dir.is_dir()
        args = mock_run.call_args[0][0]
        assert f'--backup-dir={home / "dotfiles-backup"}' in args
        assert '--suffix=.bak_20240101_120000' in args

    @patch('dotstrap.core.sync.run_command')
    def test_backup_parent_missing(self, mock_run, manager, tmp_path):
        with pytest.raises(SyncError, match='Backup directory parent does not exist'):
            manager.sync(backup_dir='nowhere/backup', cwd=tmp_path)
        mock_run.assert_not_called()


class TestHelpers:
    """Test the module-level helpers."""

    def test_backup_timestamp(self):
        assert backup_timestamp(datetime(2024, 3, 9, 7, 5, 1)) == '20240309_070501'

    def test_extract_stats(self):
        stats = extract_stats(RSYNC_OUTPUT)
        assert len(stats.splitlines()) == 6
        assert 'Matched data: 0 bytes' in stats

    def test_squeeze_blank_lines(self):
        assert squeeze_blank_lines('a\n\n\n\nb\n\nc') == 'a\n\nb\n\nc'

    def test_fix_ssh_permissions(self, tmp_path):
        ssh = tmp_path / '.ssh'
        (ssh / 'keys').mkdir(parents=True)
        (ssh / 'config').write_text('Host *\n')
        (ssh / 'keys' / 'id_ed25519').write_text('secret\n')
        os.chmod(ssh, 0o755)
        os.chmod(ssh / 'config', 0o644)

        assert fix_ssh_permissions(ssh) is True
        assert stat.S_IMODE(ssh.stat().st_mode) == 0o700
        assert stat.S_IMODE((ssh / 'config').stat().st_mode) == 0o600
        assert stat.S_IMODE((ssh / 'keys' / 'id_ed25519').stat().st_mode) == 0o600

    def test_fix_ssh_permissions_without_dir(self, tmp_path):
        assert fix_ssh_permissions(tmp_path / '.ssh') is False
