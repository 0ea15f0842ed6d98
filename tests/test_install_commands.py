import logging
import shutil
from pathlib import Path

import pytest

from addon_tracker import TYPE_GITHUB, TYPE_TUKUI, TYPE_WAGO, TYPE_WOWINTERFACE, new_addon_record
from events import (FOLDER_OWNERSHIP, INSTALL_COMPLETE, INSTALL_COPYING, INSTALL_DOWNLOADING, INSTALL_EXTRACTING,
                    INSTALL_START, RecordingContext)
from install_commands import InstallFromUrlCommand, InstallTukUICommand, InstallWagoCommand
from tukui import API_URL as TUKUI_URL
from tukui import TukUIClient
from wago import WagoClient
from wowinterface import WoWInterfaceClient

from helpers import DummyResponse, addon_files, toc_text, zip_bytes

REPO_URL = 'https://github.com/user/RepoAddon'
HASH = 'abc1234d5e6f7a8b9c0d1e2f3a4b5c6d7e8f9a0b'

ELVUI_DOWNLOAD = 'https://api.tukui.org/v1/download/dev/elvui/main'
WAGO_DETAILS = 'https://addons.wago.io/api/external/addons/details'
WAGO_ZIP = 'https://addons-files.wago.io/details-1.0.zip'


def elvui_catalog(directories=None):
    return DummyResponse(json_data=[{
        'slug': 'elvui', 'name': 'ElvUI', 'version': '13.74', 'author': 'Elv',
        'url': ELVUI_DOWNLOAD, 'web_url': 'https://tukui.org/elvui',
        'directories': directories or [],
    }])


def elvui_zip():
    files = {}
    for folder in ('ElvUI', 'ElvUI_Options', 'ElvUI_Libraries'):
        files.update(addon_files(folder, version='13.74'))
    return DummyResponse(content=zip_bytes(files))


def test_github_install_of_nested_folder(tracker, config_store, installer, fake_git, addons_dir):
    fake_git.add_repo(REPO_URL, addon_files('RepoAddon', version='2.0'), HASH)
    context = RecordingContext()

    result = InstallFromUrlCommand(tracker, config_store, REPO_URL, installer=installer).execute(context)

    assert result['success'] is True
    assert result['installed_addons'] == ['RepoAddon']
    record = tracker.get_by_folder('RepoAddon')
    assert record['type'] == TYPE_GITHUB
    assert record['url'] == REPO_URL
    assert record['commit_hash'] == HASH
    assert record['version'] == HASH[:7]
    assert record['owned_folders'] == []
    assert (addons_dir / 'RepoAddon' / 'RepoAddon.toc').exists()
    assert not (addons_dir / 'RepoAddon' / '.git').exists()
    assert context.names() == [INSTALL_START, INSTALL_DOWNLOADING, INSTALL_EXTRACTING, INSTALL_COPYING,
                               INSTALL_COMPLETE]


def test_github_install_of_root_toc_repository(tracker, config_store, installer, fake_git, addons_dir):
    fake_git.add_repo(REPO_URL, {
        'RepoAddon.toc': toc_text(title='Repo Addon', version='1.0'),
        'RepoAddon-Classic.toc': toc_text(title='Repo Addon', version='1.0'),
        'Core.lua': '-- core',
        'Libs/LibStub/LibStub.toc': toc_text(title='LibStub'),
    }, HASH)

    result = InstallFromUrlCommand(tracker, config_store, REPO_URL, installer=installer).execute()

    assert result['installed_addons'] == ['RepoAddon']
    assert (addons_dir / 'RepoAddon' / 'Libs' / 'LibStub' / 'LibStub.toc').exists()
    assert tracker.get_by_folder('RepoAddon')['name'] == 'Repo Addon'
    assert tracker.get_by_folder('RepoAddon')['embedded_libs'] == ['LibStub']


def test_root_toc_repository_with_sibling_addon(tracker, config_store, installer, fake_git, addons_dir, caplog):
    fake_git.add_repo(REPO_URL, {
        'RepoAddon.toc': toc_text(title='Repo Addon', version='1.0'),
        'Core.lua': '-- core',
        'RepoAddon_Options/RepoAddon_Options.toc': toc_text(title='Repo Addon Options'),
        'Libs/LibStub/LibStub.toc': toc_text(title='LibStub'),
    }, HASH)

    with caplog.at_level(logging.WARNING, logger='install_commands'):
        result = InstallFromUrlCommand(tracker, config_store, REPO_URL, installer=installer).execute()

    assert result['installed_addons'] == ['RepoAddon', 'RepoAddon_Options']
    assert result['parent'] == 'RepoAddon'
    assert tracker.get_by_folder('RepoAddon')['owned_folders'] == ['RepoAddon_Options']
    assert (addons_dir / 'RepoAddon_Options' / 'RepoAddon_Options.toc').exists()
    assert not (addons_dir / 'Libs').exists()
    assert 'Folder Libs has no top-level .toc' in caplog.text


def test_multi_folder_install_takes_ownership(tracker, config_store, installer, fake_git):
    url = 'https://github.com/DeadlyBossMods/DBM-Retail'
    files = {}
    for folder in ('DBM-Core', 'DBM-StatusBarTimers'):
        files.update(addon_files(folder))
    fake_git.add_repo(url, files, HASH)
    tracker.add_addon(new_addon_record('DBM-StatusBarTimers'))
    context = RecordingContext()

    result = InstallFromUrlCommand(tracker, config_store, url, installer=installer).execute(context)

    assert result['parent'] == 'DBM-Core'
    assert result['owned_folders'] == ['DBM-StatusBarTimers']
    assert tracker.get_by_folder('DBM-Core')['owned_folders'] == ['DBM-StatusBarTimers']
    assert tracker.get_by_folder('DBM-StatusBarTimers') is None
    assert (FOLDER_OWNERSHIP, 'DBM-Core', ['DBM-StatusBarTimers']) in context.events


def test_tukui_install_with_sub_folders(tracker, config_store, installer, session, addons_dir):
    session.add(TUKUI_URL, elvui_catalog())
    session.add(ELVUI_DOWNLOAD, elvui_zip())
    tracker.add_addon(new_addon_record('ElvUI_Options'))

    command = InstallTukUICommand(tracker, config_store, 'ElvUI', sub_folders=['ElvUI_Options', 'ElvUI_Libraries'],
                                  installer=installer, tukui_client=TukUIClient(session=session))
    result = command.execute()

    assert result['success'] is True
    record = tracker.get_by_folder('ElvUI')
    assert record['type'] == TYPE_TUKUI
    assert record['version'] == '13.74'
    assert record['owned_folders'] == ['ElvUI_Libraries', 'ElvUI_Options']
    assert tracker.get_by_folder('ElvUI_Options') is None
    assert tracker.get_by_folder('ElvUI_Libraries') is None
    for folder in ('ElvUI', 'ElvUI_Options', 'ElvUI_Libraries'):
        assert (addons_dir / folder).is_dir()


def test_tukui_sub_folders_default_to_catalog_directories(tracker, config_store, installer, session):
    session.add(TUKUI_URL, elvui_catalog(['ElvUI', 'ElvUI_Options']))
    session.add(ELVUI_DOWNLOAD, elvui_zip())

    result = InstallTukUICommand(tracker, config_store, 'elvui', installer=installer,
                                 tukui_client=TukUIClient(session=session)).execute()

    assert result['installed_addons'] == ['ElvUI', 'ElvUI_Options']
    assert tracker.get_by_folder('ElvUI')['owned_folders'] == ['ElvUI_Options']


def test_tukui_missing_declared_folder_rolls_back(tracker, config_store, installer, session, addons_dir):
    session.add(TUKUI_URL, elvui_catalog())
    session.add(ELVUI_DOWNLOAD, elvui_zip())

    result = InstallTukUICommand(tracker, config_store, 'ElvUI', sub_folders=['ElvUI_Missing'],
                                 installer=installer, tukui_client=TukUIClient(session=session)).execute()

    assert result['success'] is False
    assert 'ElvUI_Missing' in result['error']
    assert list(addons_dir.iterdir()) == []
    assert tracker.count() == 0


def test_copy_failure_removes_copied_folders(tracker, config_store, installer, fake_git, addons_dir, monkeypatch):
    url = 'https://github.com/user/Pack'
    files = {}
    for folder in ('Pack', 'Pack_Config', 'Pack_Media'):
        files.update(addon_files(folder))
    fake_git.add_repo(url, files, HASH)
    original_copy = installer.copy_folder

    def failing_copy(source, folder):
        if folder == 'Pack_Media':
            raise OSError('disk full')
        return original_copy(source, folder)

    monkeypatch.setattr(installer, 'copy_folder', failing_copy)
    context = RecordingContext()

    result = InstallFromUrlCommand(tracker, config_store, url, installer=installer).execute(context)

    assert result == {'success': False, 'installed_addons': [], 'error': 'disk full'}
    assert list(addons_dir.iterdir()) == []
    assert tracker.count() == 0
    assert context.events[-1][0] == 'error'


def test_interrupted_copy_leaves_no_partial_folder(tracker, config_store, installer, fake_git, addons_dir,
                                                   monkeypatch):
    url = 'https://github.com/user/Pack'
    files = {}
    for folder in ('Pack', 'Pack_Config', 'Pack_Media'):
        files.update(addon_files(folder))
    fake_git.add_repo(url, files, HASH)
    real_copytree = shutil.copytree

    def interrupted_copytree(src, dst, *args, **kwargs):
        dst = Path(dst)
        if dst.name == 'Pack_Config':
            dst.mkdir(parents=True)
            (dst / 'partial.lua').write_text('half')
            raise OSError('disk full')
        return real_copytree(src, dst, *args, **kwargs)

    monkeypatch.setattr('installer.shutil.copytree', interrupted_copytree)

    result = InstallFromUrlCommand(tracker, config_store, url, installer=installer).execute()

    assert result['success'] is False
    assert result['error'] == 'disk full'
    assert list(addons_dir.iterdir()) == []
    assert tracker.count() == 0


def test_wowinterface_install(tracker, config_store, installer, session):
    session.add('https://api.mmoui.com/v3/game/WOW/filedetails/5108.json', DummyResponse(json_data=[{
        'UID': '5108', 'UIName': 'Clique', 'UIFileName': 'Clique.zip', 'UIVersion': 'v3.4.2',
        'UIAuthorName': 'Cladhaire', 'UIDownload': 'https://cdn.wowinterface.com/Clique.zip',
    }]))
    files = addon_files('Clique')
    files.update(addon_files('Clique_Options'))
    session.add('https://cdn.wowinterface.com/Clique.zip', DummyResponse(content=zip_bytes(files)))
    url = 'https://www.wowinterface.com/downloads/info5108-Clique.html'

    result = InstallFromUrlCommand(tracker, config_store, url, installer=installer,
                                   wowinterface_client=WoWInterfaceClient(session=session)).execute()

    assert result['parent'] == 'Clique'
    record = tracker.get_by_folder('Clique')
    assert record['type'] == TYPE_WOWINTERFACE
    assert record['version'] == 'v3.4.2'
    assert record['author'] == 'Cladhaire'
    assert record['owned_folders'] == ['Clique_Options']


@pytest.mark.parametrize('url,message', [
    ('https://www.curseforge.com/wow/addons/details', 'not supported'),
    ('https://example.com/addon.zip', 'Unsupported'),
])
def test_unsupported_hosts(tracker, config_store, installer, url, message):
    result = InstallFromUrlCommand(tracker, config_store, url, installer=installer).execute()
    assert result['success'] is False
    assert message in result['error']


def test_unconfigured_destination(tracker, config_store, installer, fake_git):
    config_store.set('dest_dir', 'NOT_CONFIGURED')
    result = InstallFromUrlCommand(tracker, config_store, REPO_URL, installer=installer).execute()
    assert result['success'] is False
    assert result['error_type'] == 'configuration'
    assert fake_git.clones == []


def wago_details(releases):
    return DummyResponse(json_data={
        'id': 'details',
        'display_name': 'Details Damage Meter',
        'owner': 'Terciob',
        'website_url': 'https://addons.wago.io/addons/details',
        'releases': releases,
    })


def test_wago_install_falls_back_to_available_channel(tracker, config_store, installer, session):
    session.add(WAGO_DETAILS, wago_details({'beta': {'label': '1.0-beta', 'download_link': WAGO_ZIP}}))
    files = addon_files('Details')
    files.update(addon_files('Details_DataStorage'))
    session.add(WAGO_ZIP, DummyResponse(content=zip_bytes(files)))

    command = InstallWagoCommand(tracker, config_store, 'details', channel='stable', installer=installer,
                                 wago_client=WagoClient(api_key='secret', session=session))
    result = command.execute()

    assert result['success'] is True
    assert result['parent'] == 'Details'
    record = tracker.get_by_folder('Details')
    assert record['type'] == TYPE_WAGO
    assert record['version'] == '1.0-beta'
    assert record['name'] == 'Details Damage Meter'
    download = [c for c in session.calls if c['url'] == WAGO_ZIP][0]
    assert download['headers']['Authorization'] == 'Bearer secret'


def test_wago_parent_ignores_display_name(tracker, config_store, installer, session):
    session.add(WAGO_DETAILS, DummyResponse(json_data={
        'id': 'details',
        'display_name': 'Details Meter',
        'releases': {'stable': {'label': '2.0', 'download_link': WAGO_ZIP}},
    }))
    files = addon_files('Details')
    files.update(addon_files('Details Meter'))
    session.add(WAGO_ZIP, DummyResponse(content=zip_bytes(files)))

    command = InstallWagoCommand(tracker, config_store, 'details', installer=installer,
                                 wago_client=WagoClient(api_key='secret', session=session))
    result = command.execute()

    assert command.display_name is None
    assert result['parent'] == 'Details'
    assert result['owned_folders'] == ['Details Meter']
    assert tracker.get_by_folder('Details')['name'] == 'Details Meter'


def test_wago_without_api_key_is_configuration_error(tracker, config_store, installer, session):
    result = InstallWagoCommand(tracker, config_store, 'details', installer=installer).execute()
    assert result['success'] is False
    assert result['error_type'] == 'configuration'
    assert 'API key' in result['error']


def test_wago_rejects_foreign_download_host(tracker, config_store, installer, session):
    session.add(WAGO_DETAILS, wago_details({'stable': {'label': '1.0', 'link': 'https://evil.example/x.zip'}}))

    result = InstallWagoCommand(tracker, config_store, 'details', installer=installer,
                                wago_client=WagoClient(api_key='secret', session=session)).execute()

    assert result['success'] is False
    assert 'https://evil.example/x.zip' not in session.urls()


def test_wago_source_failure_is_tagged(tracker, config_store, installer, session):
    session.add(WAGO_DETAILS, DummyResponse(status_code=404))

    result = InstallWagoCommand(tracker, config_store, 'details', installer=installer,
                                wago_client=WagoClient(api_key='secret', session=session)).execute()

    assert result['error_tag'] == 'not_found'
    assert 'not found on Wago' in result['error']
