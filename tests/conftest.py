"""
Shared fixtures for dotstrap tests.

External tools are never run: commands go through ``FakeRunner`` and the
platform is described by a mocked ``PlatformDetector``.
"""

import subprocess
from io import StringIO
from typing import Dict, List, Optional, Sequence, Tuple
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from dotstrap.core import settings as settings_module
from dotstrap.utils.platform import OSFlavor, PlatformDetector
from dotstrap.utils.shell import CommandError


class FakeRunner:
    """Stands in for run_command, recording every call.

    ``results`` maps a substring of the joined command line to a
    ``(returncode, output)`` pair; the first matching entry wins and
    anything unmatched succeeds with no output.
    """

    def __init__(self, results: Optional[Dict[str, Tuple[int, str]]] = None):
        self.results = results or {}
        self.calls: List[List[str]] = []
        self.inputs: List[object] = []

    def __call__(self, args: Sequence[str], cwd=None, check=True, capture=True, env=None, input=None):
        args = [str(arg) for arg in args]
        self.calls.append(args)
        self.inputs.append(input)

        returncode, output = self.lookup(' '.join(args))
        if check and returncode != 0:
            raise CommandError(args, returncode, output)
        return subprocess.CompletedProcess(args, returncode, stdout=output)

    def lookup(self, command: str) -> Tuple[int, str]:
        for key, value in self.results.items():
            if key in command:
                return value
        return 0, ''

    def ran(self, fragment: str) -> bool:
        return any(fragment in ' '.join(call) for call in self.calls)

    def index(self, fragment: str) -> int:
        for position, call in enumerate(self.calls):
            if fragment in ' '.join(call):
                return position
        raise ValueError(fragment)


def make_detector(
    flavor: OSFlavor = OSFlavor.DEBIAN,
    commands: Sequence[str] = ('rsync', 'apt-get', 'dpkg', 'fc-cache', 'brew', 'lsb_release'),
    codename: str = 'bookworm',
    os_release: bool = True
) -> MagicMock:
    """A PlatformDetector double for the given flavor."""
    detector = MagicMock(spec=PlatformDetector)
    detector.flavor = flavor
    detector.is_macos = flavor == OSFlavor.MACOS
    detector.is_linux = flavor in (OSFlavor.DEBIAN, OSFlavor.LINUX, OSFlavor.WSL)
    detector.is_debian = flavor == OSFlavor.DEBIAN
    detector.is_wsl = flavor == OSFlavor.WSL
    detector.has_os_release = os_release
    detector.codename = codename
    detector.is_root = True
    detector.has_command.side_effect = lambda command: command in commands
    return detector


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep the user's config file and DOTFILES_* variables out of tests."""
    monkeypatch.setattr(settings_module, 'default_config_path', lambda: None)
    for var in list(settings_module.ENV_FLAGS) + list(settings_module.ENV_VALUES):
        monkeypatch.delenv(var, raising=False)
    for var in ('APTFILES', 'APTFILE', 'BREWFILE', 'NERD_FONTS_VERSION', 'DOTFILES_DEFAULT_FONT'):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def runner():
    """A FakeRunner where every command succeeds."""
    return FakeRunner()


@pytest.fixture
def debian():
    return make_detector(OSFlavor.DEBIAN)


@pytest.fixture
def macos():
    return make_detector(OSFlavor.MACOS, commands=('rsync', 'brew'))


@pytest.fixture
def console():
    """A rich console writing into a buffer, read back with ``console.file.getvalue()``."""
    return Console(file=StringIO(), width=200, color_system=None)


@pytest.fixture
def home(tmp_path):
    """An empty home directory."""
    path = tmp_path / 'home'
    path.mkdir()
    return path


@pytest.fixture
def source_tree(tmp_path):
    """A small dotfiles checkout."""
    source = tmp_path / 'dotfiles'
    (source / '.config' / 'git').mkdir(parents=True)
    (source / '.git').mkdir()
    (source / '.bash_profile').write_text('source ~/.bashrc\n')
    (source / '.bashrc').write_text('export EDITOR=vim\n')
    (source / '.config' / 'git' / 'config').write_text('[user]\n')
    (source / '.git' / 'HEAD').write_text('ref: refs/heads/master\n')
    (source / 'install.sh').write_text('#!/bin/bash\n')
    (source / 'README.md').write_text('# dotfiles\n')
    return source
