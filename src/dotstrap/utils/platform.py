#!/usr/bin/env python3
"""
Platform detection and OS-specific utilities for dotstrap.

This module detects the operating system, the Linux distribution family
(through /etc/os-release) and WSL, and exposes the OS-specific locations
the installer writes to.
"""

import os
import shutil
import platform
from pathlib import Path
from typing import Dict, Optional
from enum import Enum


OS_RELEASE_PATH = Path('/etc/os-release')
PROC_VERSION_PATH = Path('/proc/version')


class OSType(Enum):
    """Supported operating system types."""
    LINUX = "linux"
    MACOS = "darwin"
    WINDOWS = "windows"
    UNKNOWN = "unknown"


class OSFlavor(Enum):
    """The environment flavor the dotfiles care about."""
    MACOS = "macos"
    WSL = "wsl"
    DEBIAN = "debian"
    LINUX = "linux"
    UNKNOWN = "unknown"


def parse_os_release(text: str) -> Dict[str, str]:
    """Parse the KEY=value lines of an os-release file."""
    values = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


class PlatformDetector:
    """Handles platform detection and OS-specific operations."""

    def __init__(
        self,
        os_release_path: Path = OS_RELEASE_PATH,
        proc_version_path: Path = PROC_VERSION_PATH
    ):
        self._os_type = self._detect_os()
        self._home_dir = Path.home()
        self._os_release_path = Path(os_release_path)
        self._os_release = self._read_os_release()
        self._is_wsl = self._detect_wsl(Path(proc_version_path))
        self._config_paths = self._get_config_paths()

    @staticmethod
    def _detect_os() -> OSType:
        """Detect the current operating system."""
        system = platform.system().lower()

        if system == "linux":
            return OSType.LINUX
        elif system == "darwin":
            return OSType.MACOS
        elif system == "windows":
            return OSType.WINDOWS
        else:
            return OSType.UNKNOWN

    def _read_os_release(self) -> Dict[str, str]:
        if self._os_type != OSType.LINUX:
            return {}
        try:
            return parse_os_release(self._os_release_path.read_text(encoding='utf-8'))
        except OSError:
            return {}

    def _detect_wsl(self, proc_version_path: Path) -> bool:
        if self._os_type != OSType.LINUX:
            return False
        try:
            return 'microsoft' in proc_version_path.read_text(encoding='utf-8').lower()
        except OSError:
            return False

    @property
    def os_type(self) -> OSType:
        """Get the detected OS type."""
        return self._os_type

    @property
    def is_linux(self) -> bool:
        return self._os_type == OSType.LINUX

    @property
    def is_macos(self) -> bool:
        return self._os_type == OSType.MACOS

    @property
    def is_windows(self) -> bool:
        return self._os_type == OSType.WINDOWS

    @property
    def is_wsl(self) -> bool:
        return self._is_wsl

    @property
    def has_os_release(self) -> bool:
        """Whether /etc/os-release could be read."""
        return bool(self._os_release)

    @property
    def os_id(self) -> str:
        return self._os_release.get('ID', '')

    @property
    def os_id_like(self) -> str:
        return self._os_release.get('ID_LIKE', '')

    @property
    def os_version(self) -> str:
        return self._os_release.get('VERSION_ID', '')

    @property
    def codename(self) -> str:
        """Distribution codename, empty when unknown."""
        return (
            self._os_release.get('VERSION_CODENAME')
            or self._os_release.get('UBUNTU_CODENAME')
            or ''
        )

    @property
    def is_debian(self) -> bool:
        """Check for Debian or a Debian derivative such as Ubuntu."""
        if not self.is_linux:
            return False
        return self.os_id == 'debian' or 'debian' in self.os_id_like.split()

    @property
    def flavor(self) -> OSFlavor:
        """Get the most specific flavor, macOS first and generic Linux last."""
        if self.is_macos:
            return OSFlavor.MACOS
        if self.is_wsl:
            return OSFlavor.WSL
        if self.is_debian:
            return OSFlavor.DEBIAN
        if self.is_linux:
            return OSFlavor.LINUX
        return OSFlavor.UNKNOWN

    @property
    def home_dir(self) -> Path:
        """Get the user's home directory."""
        return self._home_dir

    @property
    def is_root(self) -> bool:
        """Check whether the process runs with an effective uid of 0."""
        geteuid = getattr(os, 'geteuid', None)
        return geteuid is not None and geteuid() == 0

    def _get_config_paths(self) -> Dict[str, Path]:
        """Get OS-specific configuration directory paths."""
        paths = {}

        if self.is_linux:
            paths.update({
                'config': self._home_dir / '.config',
                'local_share': self._home_dir / '.local' / 'share',
                'cache': self._home_dir / '.cache',
                'fonts': self._home_dir / '.local' / 'share' / 'fonts',
            })
        elif self.is_macos:
            paths.update({
                'config': self._home_dir / '.config',
                'preferences': self._home_dir / 'Library' / 'Preferences',
                'cache': self._home_dir / 'Library' / 'Caches',
                'fonts': self._home_dir / 'Library' / 'Fonts',
            })
        elif self.is_windows:
            appdata = os.environ.get('APPDATA', str(self._home_dir / 'AppData' / 'Roaming'))
            paths.update({
                'config': Path(appdata),
                'fonts': Path(os.environ.get('WINDIR', 'C:\\Windows')) / 'Fonts',
            })

        return paths

    def get_config_dir(self, name: str = 'config') -> Path:
        """Get a specific configuration directory path."""
        return self._config_paths.get(name, self.home_dir / '.config')

    @staticmethod
    def which(command: str) -> Optional[str]:
        """Locate an executable on PATH."""
        return shutil.which(command)

    def has_command(self, command: str) -> bool:
        return self.which(command) is not None

    def get_system_info(self) -> Dict[str, str]:
        """Get detailed system information."""
        return {
            'os_type': self.os_type.value,
            'flavor': self.flavor.value,
            'is_macos': str(self.is_macos),
            'is_linux': str(self.is_linux),
            'is_debian': str(self.is_debian),
            'is_wsl': str(self.is_wsl),
            'os_id': self.os_id,
            'os_id_like': self.os_id_like,
            'os_version': self.os_version,
            'codename': self.codename,
            'machine': platform.machine(),
            'python_version': platform.python_version(),
            'home_directory': str(self.home_dir),
        }


# Global instance for convenience
platform_detector = PlatformDetector()


def get_os_type() -> OSType:
    """Get the current OS type."""
    return platform_detector.os_type


def get_flavor() -> OSFlavor:
    return platform_detector.flavor


def is_linux() -> bool:
    return platform_detector.is_linux


def is_macos() -> bool:
    return platform_detector.is_macos


def is_debian() -> bool:
    return platform_detector.is_debian


def is_wsl() -> bool:
    return platform_detector.is_wsl
