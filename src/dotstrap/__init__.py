"""
dotstrap - bootstrap a machine from a dotfiles repository

This package syncs a dotfiles tree into the home directory with rsync and
installs the packages listed in its Brewfile and Aptfiles.
"""

__version__ = "1.6.0"
__author__ = "Danish Abdullah"
__description__ = "Bootstrap a machine from a dotfiles repository"

VERSION = __version__
VERSION_INFO = tuple(map(int, __version__.split('.')))

from .errors import DotstrapError
from .core.installer import Installer, Bootstrapper
from .core.settings import InstallerSettings, load_settings
from .utils.platform import PlatformDetector
from .utils.logger import get_logger

__all__ = [
    'DotstrapError',
    'Installer',
    'Bootstrapper',
    'InstallerSettings',
    'load_settings',
    'PlatformDetector',
    'get_logger',
    'VERSION',
    'VERSION_INFO',
]
