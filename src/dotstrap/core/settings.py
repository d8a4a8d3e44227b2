#!/usr/bin/env python3
"""
Installer settings for dotstrap.

Settings are layered: built-in defaults, then an optional YAML or TOML config
file, then the DOTFILES_* environment variables, then command-line flags.
"""

import os
import re
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import toml
import yaml

from ..errors import ConfigError
from ..utils.logger import get_logger
from ..utils.platform import platform_detector

logger = get_logger(__name__)

DEFAULT_GITHUB_USER = 'danishabdullah'
DEFAULT_GITHUB_REPO = 'dotfiles'
DEFAULT_BRANCH = 'master'

# Repository files that are tooling, not dotfiles
DEFAULT_EXCLUDES = [
    '.git',
    '.DS_Store',
    'bootstrap.sh',
    'brew.sh',
    'brew-drift-report.sh',
    'apt.sh',
    'apt-repos.sh',
    'install.sh',
    'README.md',
    'LICENSE-MIT.txt',
]

SOURCE_TYPES = ('tarball', 'git')

CONFIG_FILE_NAMES = ('config.yaml', 'config.yml', 'config.toml')

TRUTHY = {'1', 'true', 'yes', 'on'}

# Environment variable -> settings field
ENV_FLAGS = {
    'DOTFILES_FORCE': 'force',
    'DOTFILES_DRY_RUN': 'dry_run',
    'DOTFILES_NO_BREW': 'no_brew',
    'DOTFILES_NO_APT': 'no_apt',
    'DOTFILES_MACOS': 'macos',
    'DOTFILES_STRICT': 'strict',
    'APT_DESKTOP': 'apt_desktop',
    'DOTFILES_APT_SETUP_REPOS': 'apt_setup_repos',
    'APT_SETUP_REPOS': 'apt_setup_repos',
}
ENV_VALUES = {
    'GITHUB_USER': 'github_user',
    'GITHUB_REPO': 'github_repo',
    'DOTFILES_BRANCH': 'branch',
    'DOTFILES_BACKUP': 'backup_dir',
    'DOTFILES_SOURCE': 'source',
}

IDENTIFIER_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+$')
BRANCH_PATTERN = re.compile(r'^[a-zA-Z0-9._/-]+$')


def validate_identifier(name: str, value: Optional[str], allow_slash: bool = False):
    """Validate a GitHub user, repository or branch name."""
    if not value:
        raise ConfigError(f"{name} cannot be empty")

    pattern = BRANCH_PATTERN if allow_slash else IDENTIFIER_PATTERN
    if not pattern.match(value):
        allowed = "a-z, A-Z, 0-9, ., _, -" + (", /" if allow_slash else "")
        raise ConfigError(f"{name} contains invalid characters: {value} (allowed: {allowed})")


@dataclass
class InstallerSettings:
    """Everything a dotstrap run can be told."""

    # Source
    github_user: str = DEFAULT_GITHUB_USER
    github_repo: str = DEFAULT_GITHUB_REPO
    branch: str = DEFAULT_BRANCH
    source: str = 'tarball'

    # Behaviour
    force: bool = False
    dry_run: bool = False
    backup_dir: Optional[str] = None
    strict: bool = False
    exclude: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDES))

    # Optional steps
    no_brew: bool = False
    no_apt: bool = False
    apt_desktop: bool = False
    apt_setup_repos: bool = False
    macos: bool = False

    home: Path = field(default_factory=Path.home)

    @property
    def tarball_url(self) -> str:
        return (
            f"https://github.com/{self.github_user}/{self.github_repo}"
            f"/archive/refs/heads/{self.branch}.tar.gz"
        )

    @property
    def git_url(self) -> str:
        return f"https://github.com/{self.github_user}/{self.github_repo}.git"

    @property
    def repo_label(self) -> str:
        return f"github.com/{self.github_user}/{self.github_repo}"

    def validate(self):
        """Check identifiers and enumerated values, raising ConfigError."""
        validate_identifier("GitHub user", self.github_user)
        validate_identifier("GitHub repo", self.github_repo)
        validate_identifier("Branch name", self.branch, allow_slash=True)
        if self.source not in SOURCE_TYPES:
            raise ConfigError(f"Unknown source type: {self.source} (expected one of {', '.join(SOURCE_TYPES)})")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['home'] = str(self.home)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'InstallerSettings':
        """Create settings from a mapping, ignoring unknown keys."""
        settings = cls()
        settings.update(data)
        return settings

    def update(self, data: Mapping[str, Any]):
        """Apply values whose key names a settings field and whose value is set."""
        known = {f.name: f for f in fields(self)}
        for key, value in data.items():
            key = key.replace('-', '_')
            if key not in known:
                logger.warning(f"Ignoring unknown setting '{key}'")
                continue
            if value is None:
                continue
            if key == 'home':
                value = Path(value)
            elif key == 'exclude':
                value = [str(item) for item in value]
            elif known[key].type == bool or isinstance(getattr(self, key), bool):
                value = _to_bool(value)
            setattr(self, key, value)


def _to_bool(value: Union[str, bool, int]) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY
    return bool(value)


def default_config_path() -> Optional[Path]:
    """First existing config file under ~/.config/dotstrap."""
    config_dir = platform_detector.get_config_dir() / 'dotstrap'
    for name in CONFIG_FILE_NAMES:
        candidate = config_dir / name
        if candidate.is_file():
            return candidate
    return None


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML or TOML config file into a dict."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix == '.toml':
                data = toml.load(f)
            else:
                data = yaml.safe_load(f)
    except (yaml.YAMLError, toml.TomlDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    # Allow everything to live under a top-level "dotstrap" table
    if isinstance(data.get('dotstrap'), dict):
        data = data['dotstrap']

    logger.debug(f"Loaded settings from {path}")
    return data


def settings_from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect the settings carried by environment variables."""
    values: Dict[str, Any] = {}
    for var, key in ENV_FLAGS.items():
        raw = environ.get(var)
        if raw:
            values[key] = values.get(key, False) or _to_bool(raw)
    for var, key in ENV_VALUES.items():
        raw = environ.get(var)
        if raw:
            values[key] = raw
    return values


def load_settings(
    config_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None
) -> InstallerSettings:
    """
    Build settings from every layer and validate them.

    Args:
        config_file: Explicit config file; the default location is used if omitted
        environ: Environment mapping (defaults to os.environ)
        overrides: Command-line values; None means "not given"

    Returns:
        Validated InstallerSettings
    """
    if environ is None:
        environ = os.environ

    home = environ.get('HOME')
    if not home:
        raise ConfigError("HOME environment variable is not set")

    settings = InstallerSettings(home=Path(home))

    if config_file is None:
        config_file = default_config_path()
    if config_file is not None:
        settings.update(load_config_file(config_file))

    settings.update(settings_from_env(environ))

    if overrides:
        # Flags only switch things on; a missing flag keeps the lower layer
        settings.update({
            key: value for key, value in overrides.items()
            if value is not None and value is not False
        })

    settings.validate()
    return settings
