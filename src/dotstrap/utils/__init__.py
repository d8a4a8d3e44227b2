"""
Utility modules for dotstrap.

This package contains platform detection, logging, path handling, prompts
and subprocess helpers used throughout dotstrap.
"""

from .logger import get_logger, setup_logging, collect_warnings
from .platform import platform_detector, get_os_type, get_flavor, is_linux, is_macos, is_debian, is_wsl

__all__ = [
    'get_logger',
    'setup_logging',
    'collect_warnings',
    'platform_detector',
    'get_os_type',
    'get_flavor',
    'is_linux',
    'is_macos',
    'is_debian',
    'is_wsl',
]
