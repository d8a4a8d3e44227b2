#!/usr/bin/env python3
"""
Tests for Nerd Fonts installation.
"""

import json
import zipfile
import pytest
import requests
from unittest.mock import MagicMock

from dotstrap.core.fonts import (
    AVAILABLE_FONTS,
    FontInstaller,
    configure_ghostty,
    configure_vscode,
    default_font,
    font_version,
)
from dotstrap.utils.logger import collect_warnings
from dotstrap.utils.platform import OSFlavor

from .conftest import FakeRunner, make_detector


def write_font_zip(dest, font):
    with zipfile.ZipFile(dest, 'w') as zf:
        zf.writestr(f'{font}NerdFont-Regular.ttf', 'regular')
        zf.writestr(f'{font}NerdFont-Bold.ttf', 'bold')
        zf.writestr('README.md', 'readme')
        zf.writestr('LICENSE', 'license')
    return dest


@pytest.fixture
def downloader():
    downloader = MagicMock()
    downloader.download.side_effect = lambda url, dest: write_font_zip(dest, url.rsplit('/', 1)[-1][:-4])
    return downloader


@pytest.fixture
def installer(home, debian, downloader):
    return FontInstaller(home=home, version='v3.3.0', detector=debian, runner=FakeRunner(), downloader=downloader)


class TestDefaults:
    """Test environment driven defaults."""

    def test_version(self):
        assert font_version({}) == 'v3.3.0'
        assert font_version({'NERD_FONTS_VERSION': 'v3.4.0'}) == 'v3.4.0'

    def test_default_font(self):
        assert default_font({}) == 'JetBrainsMono'
        assert default_font({'DOTFILES_DEFAULT_FONT': 'FiraCode'}) == 'FiraCode'


class TestFontInstaller:
    """Test downloading and unpacking fonts."""

    def test_font_dir(self, installer, home):
        assert installer.font_dir == home / '.local' / 'share' / 'fonts' / 'NerdFonts'

    def test_url(self, installer):
        assert installer.font_url('Hack') == \
            'https://github.com/ryanoasis/nerd-fonts/releases/download/v3.3.0/Hack.zip'

    def test_install_selected(self, installer, downloader):
        report = installer.install(['Hack', 'FiraCode'])

        assert report.installed == ['Hack', 'FiraCode']
        assert report.file_count == 4
        assert report.families == [
            'FiraCodeNerdFont-Bold', 'FiraCodeNerdFont-Regular',
            'HackNerdFont-Bold', 'HackNerdFont-Regular',
        ]
        assert not (installer.font_dir / 'README.md').exists()
        assert not (installer.font_dir / 'LICENSE').exists()
        assert installer.run.ran(f'fc-cache -f {installer.font_dir}')
        assert downloader.download.call_count == 2

    def test_install_all_by_default(self, installer, downloader):
        report = installer.install()
        assert report.installed == list(AVAILABLE_FONTS)
        assert downloader.download.call_count == len(AVAILABLE_FONTS)

    def test_unknown_font_warns(self, installer, downloader):
        with collect_warnings() as collector:
            report = installer.install(['ComicSans'])
        assert report.unknown == ['ComicSans']
        assert "Unknown font 'ComicSans', skipping" in collector.messages
        downloader.download.assert_not_called()

    def test_download_failure_warns(self, installer, downloader):
        downloader.download.side_effect = requests.HTTPError('404 Client Error: Not Found')
        with collect_warnings() as collector:
            report = installer.install(['Hack'])
        assert report.failed == ['Hack']
        assert any(message.startswith('Failed to download Hack') for message in collector.messages)

    def test_missing_fc_cache(self, home, downloader):
        detector = make_detector(OSFlavor.DEBIAN, commands=())
        installer = FontInstaller(home=home, detector=detector, runner=FakeRunner(), downloader=downloader)
        with collect_warnings() as collector:
            assert installer.refresh_cache() is False
        assert collector.messages == ['fc-cache not found, you may need to refresh fonts manually']

    def test_list_installed_limit(self, installer):
        installer.font_dir.mkdir(parents=True)
        for number in range(25):
            (installer.font_dir / f'Font{number:02d}.otf').write_text('')
        (installer.font_dir / 'notes.txt').write_text('')

        families, count = installer.list_installed()
        assert len(families) == 20
        assert families[0] == 'Font00'
        assert count == 25

    def test_list_installed_without_dir(self, installer):
        assert installer.list_installed() == ([], 0)


class TestConfigureDefaultFont:
    """Test editor and terminal configuration."""

    def test_ghostty_replace(self, tmp_path):
        config = tmp_path / 'config'
        config.write_text('theme = dark\nfont-family = "Menlo"\nfont-size = 13\n')
        assert configure_ghostty(config, 'Hack Nerd Font') is True
        assert config.read_text() == 'theme = dark\nfont-family = "Hack Nerd Font"\nfont-size = 13\n'

    def test_ghostty_append(self, tmp_path):
        config = tmp_path / 'config'
        config.write_text('theme = dark')
        configure_ghostty(config, 'Hack Nerd Font')
        assert config.read_text() == 'theme = dark\nfont-family = "Hack Nerd Font"\n'

    def test_ghostty_missing(self, tmp_path):
        assert configure_ghostty(tmp_path / 'config', 'Hack Nerd Font') is False
        assert not (tmp_path / 'config').exists()

    def test_vscode(self, tmp_path):
        settings = tmp_path / 'settings.json'
        settings.write_text(json.dumps({'editor.tabSize': 2}))
        assert configure_vscode(settings, 'FiraCode Nerd Font') is True

        data = json.loads(settings.read_text())
        assert data['editor.tabSize'] == 2
        assert data['editor.fontFamily'] == "'FiraCode Nerd Font', 'Droid Sans Mono', 'monospace'"
        assert data['terminal.integrated.fontFamily'] == "'FiraCode Nerd Font'"

    def test_configure_both(self, installer, home):
        ghostty = home / '.config' / 'ghostty' / 'config'
        vscode = home / '.config' / 'Code' / 'User' / 'settings.json'
        ghostty.parent.mkdir(parents=True)
        vscode.parent.mkdir(parents=True)
        ghostty.write_text('')
        vscode.write_text('{}')

        assert installer.configure_default_font('Hack') == ['Ghostty', 'VSCode']

    def test_broken_vscode_settings_warns(self, installer, home):
        vscode = home / '.config' / 'Code' / 'User' / 'settings.json'
        vscode.parent.mkdir(parents=True)
        vscode.write_text('{ // comments are not JSON\n}')

        with collect_warnings() as collector:
            assert installer.configure_default_font('Hack') == []
        assert any('Could not update VSCode settings' in message for message in collector.messages)

    def test_unreadable_ghostty_config_warns(self, installer, home):
        ghostty = home / '.config' / 'ghostty' / 'config'
        vscode = home / '.config' / 'Code' / 'User' / 'settings.json'
        ghostty.parent.mkdir(parents=True)
        vscode.parent.mkdir(parents=True)
        ghostty.write_bytes(b'font-family = "\xff\xfe"\n')
        vscode.write_text('{}')

        with collect_warnings() as collector:
            assert installer.configure_default_font('Hack') == ['VSCode']
        assert any('Could not update Ghostty config' in message for message in collector.messages)

    def test_unknown_default_warns(self, installer):
        with collect_warnings() as collector:
            installer.configure_default_font('Papyrus')
        assert collector.messages[0].startswith("'Papyrus' is not a known font")
