import sys
from pathlib import Path

import pytest

# Ensure the project root is on sys.path so the flat modules import without installing
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from addon_tracker import AddonTracker  # noqa: E402
from config_store import ConfigStore  # noqa: E402
from helpers import FakeGitClient, FakeSession  # noqa: E402
from installer import Installer  # noqa: E402


@pytest.fixture
def retail_dir(tmp_path):
    path = tmp_path / 'World of Warcraft' / '_retail_'
    path.mkdir(parents=True)
    return path


@pytest.fixture
def addons_dir(retail_dir):
    path = retail_dir / 'Interface' / 'AddOns'
    path.mkdir(parents=True)
    return path


@pytest.fixture
def config_dir(tmp_path):
    return tmp_path / 'config'


@pytest.fixture
def config_store(config_dir, addons_dir, monkeypatch):
    monkeypatch.delenv('WAGO_API_KEY', raising=False)
    store = ConfigStore(config_dir)
    store.set('dest_dir', str(addons_dir))
    return store


@pytest.fixture
def tracker(config_dir):
    return AddonTracker(config_dir)


@pytest.fixture
def fake_git():
    return FakeGitClient()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def installer(addons_dir, fake_git, session):
    return Installer(addons_dir, git_client=fake_git, session=session)
