"""
Core modules for dotstrap.

This package contains the settings, download, sync, package manager and
installer workflows of dotstrap.
"""

from .settings import InstallerSettings, load_settings
from .download import ArchiveDownloader, SourceFetcher
from .sync import SyncManager, SyncResult, SyncStatus
from .packages import AptInstaller, BrewManager, DriftReport
from .apt_repos import AptRepoManager, REPOSITORIES
from .fonts import FontInstaller
from .installer import Installer, Bootstrapper

__all__ = [
    'InstallerSettings',
    'load_settings',
    'ArchiveDownloader',
    'SourceFetcher',
    'SyncManager',
    'SyncResult',
    'SyncStatus',
    'AptInstaller',
    'BrewManager',
    'DriftReport',
    'AptRepoManager',
    'REPOSITORIES',
    'FontInstaller',
    'Installer',
    'Bootstrapper',
]
