#!/usr/bin/env python3
"""
Nerd Fonts installation for dotstrap.

Downloads Nerd Fonts release archives into the user font directory, refreshes
fontconfig and points Ghostty and VS Code at the chosen default font.
"""

import json
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence

import requests

from ..errors import DownloadError
from ..utils.logger import get_logger
from ..utils.platform import platform_detector, PlatformDetector
from ..utils.shell import CommandError, run_command
from .download import ArchiveDownloader, extract_zip

AVAILABLE_FONTS = (
    'JetBrainsMono',
    'FiraCode',
    'CascadiaCode',
    'Hack',
    'Meslo',
)

DEFAULT_VERSION = 'v3.3.0'
DEFAULT_FONT = 'JetBrainsMono'

RELEASE_URL = 'https://github.com/ryanoasis/nerd-fonts/releases/download/{version}/{font}.zip'

ZIP_EXCLUDES = ('*.txt', '*.md', 'LICENSE')

FONT_SUFFIXES = ('.ttf', '.otf')

MACOS_HINT = "This command is for Linux. On macOS, use: brew install --cask font-*-nerd-font"


def font_version(environ: Optional[Mapping[str, str]] = None) -> str:
    environ = os.environ if environ is None else environ
    return environ.get('NERD_FONTS_VERSION') or DEFAULT_VERSION


def default_font(environ: Optional[Mapping[str, str]] = None) -> str:
    environ = os.environ if environ is None else environ
    return environ.get('DOTFILES_DEFAULT_FONT') or DEFAULT_FONT


def full_font_name(name: str) -> str:
    return f"{name} Nerd Font"


@dataclass
class FontReport:
    """Outcome of a font installation run."""
    installed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    unknown: List[str] = field(default_factory=list)
    families: List[str] = field(default_factory=list)
    file_count: int = 0
    configured: List[str] = field(default_factory=list)


class FontInstaller:
    """Installs Nerd Fonts for the current user."""

    def __init__(
        self,
        home: Optional[Path] = None,
        version: Optional[str] = None,
        detector: PlatformDetector = platform_detector,
        runner: Callable = run_command,
        downloader: Optional[ArchiveDownloader] = None
    ):
        self.logger = get_logger(f"{__name__}.FontInstaller")
        self.home = Path(home) if home else detector.home_dir
        self.version = version or font_version()
        self.detector = detector
        self.run = runner
        self.downloader = downloader or ArchiveDownloader()

    @property
    def font_dir(self) -> Path:
        return self.home / '.local' / 'share' / 'fonts' / 'NerdFonts'

    def font_url(self, font: str) -> str:
        return RELEASE_URL.format(version=self.version, font=font)

    def install_font(self, font: str, workdir: Path) -> bool:
        """Download one font archive and unpack it into the font directory."""
        archive = workdir / f"{font}.zip"

        self.logger.info(f"Downloading {font}...")
        try:
            self.downloader.download(self.font_url(font), archive)
        except requests.RequestException as e:
            self.logger.warning(f"Failed to download {font}: {e}")
            return False

        self.logger.info(f"Extracting {font}...")
        try:
            extract_zip(archive, self.font_dir, exclude=ZIP_EXCLUDES)
        except DownloadError as e:
            self.logger.warning(str(e))
            return False
        finally:
            archive.unlink(missing_ok=True)

        self.logger.info(f"  Installed: {font}")
        return True

    def install(self, fonts: Sequence[str] = ()) -> FontReport:
        """
        Install the given fonts, or every available font when none are named.

        Unknown names and failed downloads are warnings, not errors.
        """
        report = FontReport()
        selected = list(fonts) or list(AVAILABLE_FONTS)

        self.font_dir.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Installing Nerd Fonts {self.version}...")
        self.logger.info(f"Font directory: {self.font_dir}")

        with tempfile.TemporaryDirectory(prefix='dotstrap-fonts-') as tmp:
            workdir = Path(tmp)
            for font in selected:
                if font not in AVAILABLE_FONTS:
                    self.logger.warning(f"Unknown font '{font}', skipping")
                    report.unknown.append(font)
                    continue
                if self.install_font(font, workdir):
                    report.installed.append(font)
                else:
                    report.failed.append(font)

        self.refresh_cache()
        report.families, report.file_count = self.list_installed()
        return report

    def refresh_cache(self) -> bool:
        self.logger.info("Refreshing font cache...")
        if not self.detector.has_command('fc-cache'):
            self.logger.warning("fc-cache not found, you may need to refresh fonts manually")
            return False
        try:
            self.run(['fc-cache', '-f', str(self.font_dir)])
        except CommandError as e:
            self.logger.warning(f"fc-cache failed: {e}")
            return False
        self.logger.info("Font cache updated")
        return True

    def list_installed(self, limit: int = 20):
        """
        Font families in the font directory.

        Returns:
            Tuple of (first ``limit`` sorted family names, number of font files)
        """
        if not self.font_dir.is_dir():
            return [], 0

        files = [
            p for p in self.font_dir.iterdir()
            if p.is_file() and p.suffix.lower() in FONT_SUFFIXES
        ]
        families = sorted({p.stem for p in files})
        return families[:limit], len(files)

    def configure_default_font(self, name: str) -> List[str]:
        """Point Ghostty and VS Code at ``name``; returns the apps updated."""
        if name not in AVAILABLE_FONTS:
            self.logger.warning(f"'{name}' is not a known font. Available: {' '.join(AVAILABLE_FONTS)}")

        full_name = full_font_name(name)
        self.logger.info(f"Configuring default font: {full_name}")

        configured = []
        ghostty_config = self.home / '.config' / 'ghostty' / 'config'
        try:
            if configure_ghostty(ghostty_config, full_name):
                self.logger.info("  Updated Ghostty config")
                configured.append('Ghostty')
        except (OSError, ValueError) as e:
            self.logger.warning(f"Could not update Ghostty config: {e}")

        vscode_settings = self.home / '.config' / 'Code' / 'User' / 'settings.json'
        try:
            if configure_vscode(vscode_settings, full_name):
                self.logger.info("  Updated VSCode settings")
                configured.append('VSCode')
        except (OSError, ValueError) as e:
            self.logger.warning(f"Could not update VSCode settings: {e}")

        return configured


def configure_ghostty(config_path: Path, full_name: str) -> bool:
    """Replace or append the ``font-family`` line of an existing Ghostty config."""
    if not config_path.is_file():
        return False

    line = f'font-family = "{full_name}"'
    text = config_path.read_text(encoding='utf-8')
    pattern = re.compile(r'^font-family.*$', re.MULTILINE)

    if pattern.search(text):
        text = pattern.sub(lambda _m: line, text)
    else:
        if text and not text.endswith('\n'):
            text += '\n'
        text += line + '\n'

    config_path.write_text(text, encoding='utf-8')
    return True


def configure_vscode(settings_path: Path, full_name: str) -> bool:
    """Set the editor and terminal fonts in an existing VS Code settings.json."""
    if not settings_path.is_file():
        return False

    with open(settings_path, 'r', encoding='utf-8') as f:
        settings = json.load(f)
    if not isinstance(settings, dict):
        raise ValueError(f"{settings_path} does not contain a JSON object")

    settings['editor.fontFamily'] = f"'{full_name}', 'Droid Sans Mono', 'monospace'"
    settings['terminal.integrated.fontFamily'] = f"'{full_name}'"

    with open(settings_path, 'w', encoding='utf-8') as f:
        json.dump(settings, f, indent=4)
    return True
