from addon_tracker import new_addon_record
from tukui import API_URL as TUKUI_URL
from tukui import TukUIClient
from update_checker import UpdateChecker, is_hash_update, is_version_update
from wago import WagoClient

from helpers import DummyResponse, FakeGitClient, FakeSession

FULL_HASH = 'abc1234d5e6f7a8b9c0d1e2f3a4b5c6d7e8f9a0b'
OTHER_HASH = 'ffff0000eeee1111dddd2222cccc3333bbbb4444'


def test_hash_prefix_equality():
    assert is_hash_update('abc1234', FULL_HASH) is False
    assert is_hash_update(FULL_HASH, 'abc1234') is False
    assert is_hash_update(FULL_HASH, OTHER_HASH) is True
    assert is_hash_update(None, OTHER_HASH) is True
    assert is_hash_update(FULL_HASH, None) is False


def test_version_string_comparison():
    assert is_version_update('1.0', '1.1') is True
    assert is_version_update('1.0', '1.0') is False
    assert is_version_update('2.0', '1.0') is True
    assert is_version_update('1.0', None) is False


def test_github_check_uses_commit_hash():
    git = FakeGitClient()
    git.remote_hashes['https://github.com/user/Repo'] = FULL_HASH
    checker = UpdateChecker(git_client=git)
    record = new_addon_record('Repo', type='github', url='https://github.com/user/Repo', version='1.0',
                              commit_hash='abc1234')

    result = checker.check(record)

    assert result['success'] is True
    assert result['update_available'] is False
    assert result['remote_version'] == 'abc1234'
    assert result['remote_hash'] == FULL_HASH


def test_github_check_unreachable_remote():
    checker = UpdateChecker(git_client=FakeGitClient())
    record = new_addon_record('Repo', type='github', url='https://github.com/user/Repo')
    result = checker.check(record)
    assert result['success'] is False
    assert 'github.com/user/Repo' in result['error']


def test_manual_records_cannot_be_checked():
    result = UpdateChecker(git_client=FakeGitClient()).check(new_addon_record('Loose'))
    assert result['success'] is False


def test_tukui_check():
    session = FakeSession({TUKUI_URL: DummyResponse(json_data=[
        {'slug': 'elvui', 'name': 'ElvUI', 'version': '13.75', 'url': 'https://api.tukui.org/v1/download/elvui'},
    ])})
    checker = UpdateChecker(git_client=FakeGitClient(), tukui_client=TukUIClient(session=session))

    result = checker.check(new_addon_record('ElvUI', type='tukui', version='13.74'))

    assert result['update_available'] is True
    assert result['remote_version'] == '13.75'
    assert result['metadata']['download_url'] == 'https://api.tukui.org/v1/download/elvui'


def test_wago_check_picks_channel_and_reports_missing_key():
    details = 'https://addons.wago.io/api/external/addons/details'
    session = FakeSession({details: DummyResponse(json_data={
        'id': 'details', 'display_name': 'Details', 'releases': {
            'alpha': {'label': '2.0-alpha', 'link': 'https://addons-files.wago.io/a.zip'},
        },
    })})
    record = new_addon_record('Details', type='wago', url='https://addons.wago.io/addons/details', version='1.0')

    result = UpdateChecker(git_client=FakeGitClient(), wago_client=WagoClient('secret', session=session)).check(record)
    assert result['update_available'] is True
    assert result['remote_version'] == '2.0-alpha'
    assert result['metadata']['channel'] == 'alpha'

    missing = UpdateChecker(git_client=FakeGitClient(), wago_client=WagoClient('', session=session)).check(record)
    assert missing['success'] is False
    assert missing['error_tag'] == 'no_api_key'
