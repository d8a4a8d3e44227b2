#!/usr/bin/env python3
"""
Tests for external apt repository setup.
"""

import pytest
import requests
from unittest.mock import MagicMock

from dotstrap.core import apt_repos
from dotstrap.core.apt_repos import (
    CORE_REPOSITORIES,
    REPOSITORIES,
    AptRepoManager,
    select_repositories,
)
from dotstrap.errors import PackageError
from dotstrap.utils.platform import OSFlavor

from .conftest import FakeRunner, make_detector


@pytest.fixture(autouse=True)
def apt_dirs(tmp_path, monkeypatch):
    """Point keyrings and source lists at temporary directories."""
    keyrings = tmp_path / 'keyrings'
    sources = tmp_path / 'sources.list.d'
    keyrings.mkdir()
    sources.mkdir()
    monkeypatch.setattr(apt_repos, 'KEYRING_DIR', keyrings)
    monkeypatch.setattr(apt_repos, 'SOURCES_DIR', sources)
    return keyrings, sources


@pytest.fixture
def downloader():
    downloader = MagicMock()
    downloader.fetch_bytes.return_value = b'-----BEGIN PGP PUBLIC KEY BLOCK-----'
    downloader.fetch_text.return_value = 'deb [signed-by=/usr/share/keyrings/caddy-stable-archive-keyring.gpg] ' \
                                         'https://dl.cloudsmith.io/public/caddy/stable/deb/debian any-version main\n'
    return downloader


class TestSelectRepositories:
    """Test choosing repositories."""

    def test_default_is_core(self):
        assert [repo.name for repo in select_repositories([])] == list(CORE_REPOSITORIES)

    def test_all_is_core(self):
        assert [repo.name for repo in select_repositories([], include_all=True)] == list(CORE_REPOSITORIES)

    def test_ghostty_only_on_request(self):
        assert 'ghostty' not in CORE_REPOSITORIES
        assert [repo.name for repo in select_repositories(['ghostty'])] == ['ghostty']

    def test_all_plus_ghostty(self):
        names = [repo.name for repo in select_repositories(['ghostty', 'caddy'], include_all=True)]
        assert names == ['caddy', 'azure-cli', 'postgres', 'ghostty']

    def test_unknown(self):
        with pytest.raises(PackageError, match='Unknown repository: nginx'):
            select_repositories(['nginx'])


class TestAptRepository:
    """Test source line rendering."""

    def test_azure_source(self, apt_dirs):
        keyrings, _sources = apt_dirs
        line = REPOSITORIES['azure-cli'].render_source(arch='arm64', codename='noble')
        assert line == (
            f"deb [arch=arm64 signed-by={keyrings / 'microsoft-archive-keyring.gpg'}] "
            "https://packages.microsoft.com/repos/azure-cli/ noble main\n"
        )

    def test_postgres_source(self):
        line = REPOSITORIES['postgres'].render_source(arch='amd64', codename='bookworm')
        assert 'https://apt.postgresql.org/pub/repos/apt/ bookworm-pgdg main' in line
        assert 'arch=' not in line


class TestAptRepoManager:
    """Test configuring repositories."""

    def test_setup_writes_key_and_list(self, debian, downloader, apt_dirs):
        keyrings, sources = apt_dirs
        runner = FakeRunner()
        manager = AptRepoManager(detector=debian, runner=runner, downloader=downloader)

        assert manager.setup(REPOSITORIES['postgres'], codename='bookworm', arch='amd64') is True

        gpg = runner.index('gpg --dearmor')
        assert str(keyrings / 'postgresql.gpg') in runner.calls[gpg]
        assert runner.inputs[gpg] == b'-----BEGIN PGP PUBLIC KEY BLOCK-----'

        tee = runner.index('tee /')
        assert runner.calls[tee][-1] == str(sources / 'pgdg.list')
        assert 'bookworm-pgdg main' in runner.inputs[tee]

    def test_caddy_list_is_downloaded(self, debian, downloader):
        runner = FakeRunner()
        AptRepoManager(detector=debian, runner=runner, downloader=downloader).setup(
            REPOSITORIES['caddy'], codename='bookworm', arch='amd64'
        )
        downloader.fetch_text.assert_called_once_with(REPOSITORIES['caddy'].source_url)
        assert 'caddy/stable' in runner.inputs[runner.index('tee /')]

    def test_already_configured(self, debian, downloader, apt_dirs):
        _keyrings, sources = apt_dirs
        (sources / 'azure-cli.list').write_text('deb https://packages.microsoft.com/repos/azure-cli/ noble main\n')
        runner = FakeRunner()

        manager = AptRepoManager(detector=debian, runner=runner, downloader=downloader)
        assert manager.setup(REPOSITORIES['azure-cli'], codename='noble', arch='amd64') is False
        assert runner.calls == []
        downloader.fetch_bytes.assert_not_called()

    def test_key_download_failure(self, debian, downloader):
        downloader.fetch_bytes.side_effect = requests.ConnectionError('timed out')
        manager = AptRepoManager(detector=debian, runner=FakeRunner(), downloader=downloader)
        with pytest.raises(PackageError, match='Failed to download Ghostty repository data'):
            manager.setup(REPOSITORIES['ghostty'], codename='trixie', arch='amd64')

    def test_requires_os_release(self, downloader):
        detector = make_detector(OSFlavor.LINUX, os_release=False)
        with pytest.raises(PackageError, match='/etc/os-release not found'):
            AptRepoManager(detector=detector, runner=FakeRunner(), downloader=downloader).setup_all([])

    def test_prerequisites_installed_when_missing(self, debian, downloader):
        runner = FakeRunner({'dpkg -s gnupg': (1, 'not installed')})
        AptRepoManager(detector=debian, runner=runner, downloader=downloader).ensure_prerequisites()
        assert runner.ran('apt-get install -y gnupg')
        assert not runner.ran('apt-get install -y ca-certificates')

    def test_prerequisites_present(self, debian, downloader, runner):
        AptRepoManager(detector=debian, runner=runner, downloader=downloader).ensure_prerequisites()
        assert not runner.ran('apt-get')

    def test_codename_falls_back_to_lsb_release(self, downloader):
        detector = make_detector(OSFlavor.DEBIAN, codename='')
        runner = FakeRunner({'lsb_release -cs': (0, 'jammy\n')})
        assert AptRepoManager(detector=detector, runner=runner, downloader=downloader).codename() == 'jammy'

    def test_codename_missing(self, downloader):
        detector = make_detector(OSFlavor.DEBIAN, codename='', commands=('apt-get',))
        with pytest.raises(PackageError, match='Unable to determine OS codename'):
            AptRepoManager(detector=detector, runner=FakeRunner(), downloader=downloader).codename()

    def test_architecture_default(self, debian, downloader):
        runner = FakeRunner({'dpkg --print-architecture': (127, 'dpkg: not found')})
        assert AptRepoManager(detector=debian, runner=runner, downloader=downloader).architecture() == 'amd64'

    def test_setup_all(self, debian, downloader, apt_dirs):
        _keyrings, sources = apt_dirs
        (sources / 'caddy-stable.list').write_text('deb https://dl.cloudsmith.io/public/caddy/stable/deb/debian\n')
        runner = FakeRunner({'dpkg --print-architecture': (0, 'arm64\n')})

        manager = AptRepoManager(detector=debian, runner=runner, downloader=downloader)
        added = manager.setup_all(select_repositories([], include_all=True))

        assert added == ['azure-cli', 'postgres']
        azure_list = runner.inputs[runner.index('azure-cli.list')]
        assert azure_list.startswith('deb [arch=arm64 ')
        assert 'bookworm main' in azure_list
