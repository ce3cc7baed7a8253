import os

import pytest

from plugin_installer.errors import VersionNotFound, VersionNotInstalled
from plugin_installer.models import PluginVersion
from plugin_installer.versions import (
    compare_versions,
    list_installed_versions,
    pick_version,
    select_rollback_target,
    sort_versions,
)


def _version(value):
    return PluginVersion.model_validate({
        'version': value,
        'entry': {'path': 'index.js'},
        'dist': {'type': 'zip', 'url': f'https://example.com/{value}.zip', 'sha256': 'a' * 64},
    })


def test_compare_versions():
    assert compare_versions('1.0.0', '1.0.0') == 0
    assert compare_versions('1.2.0', '1.10.0') == -1
    assert compare_versions('v2.0.0', '1.9.9') == 1
    assert compare_versions('1.0.0', '1.0.0-beta.1') == 1
    assert compare_versions('1.0.0-alpha', '1.0.0-beta') == -1
    assert compare_versions('1.0.0', '1.0.0rc1') == 1
    assert compare_versions('1.0.0b2', '1.0.0rc1') == -1
    assert compare_versions('1.0.0rc1', '0.9.9') == 1
    assert compare_versions('nightly', 'beta') == 1


def test_sort_versions_numeric_order():
    assert sort_versions(['1.10.0', '1.2.0', '1.0.0-rc.1', '1.0.0']) == ['1.0.0-rc.1', '1.0.0', '1.2.0', '1.10.0']


def test_pick_latest_prefers_stable():
    versions = [_version('1.1.0-rc.1'), _version('1.0.0'), _version('1.1.0'), _version('1.1.0-beta')]

    assert pick_version(versions).version == '1.1.0'


def test_pick_latest_with_unseparated_suffixes():
    versions = [_version('1.0.0rc1'), _version('1.0.0'), _version('1.0.0b2')]

    assert pick_version(versions).version == '1.0.0'
    assert sort_versions(['1.0.0', '1.0.0rc1', '1.0.0b2']) == ['1.0.0b2', '1.0.0rc1', '1.0.0']


def test_pick_requested_exact_match():
    versions = [_version('1.0.0'), _version('1.1.0')]

    assert pick_version(versions, '1.0.0').version == '1.0.0'
    with pytest.raises(VersionNotFound) as exc_info:
        pick_version(versions, '2.0.0', plugin_id='echo-bot')
    assert exc_info.value.context == {'plugin_id': 'echo-bot', 'version': '2.0.0'}


def test_pick_from_empty_list():
    with pytest.raises(VersionNotFound):
        pick_version([])


def test_version_cannot_escape_install_dir():
    for bad in ('..', '../1.0.0', ''):
        with pytest.raises(ValueError):
            _version(bad)


def test_list_installed_versions(tmp_path):
    root = tmp_path / 'echo-bot'
    for name in ('1.10.0', '1.2.0', '1.0.0'):
        (root / name).mkdir(parents=True)
    (root / 'notes.txt').write_text('not a version')

    assert list_installed_versions(str(root)) == ['1.0.0', '1.2.0', '1.10.0']
    assert list_installed_versions(os.path.join(str(tmp_path), 'missing')) == []


def test_select_rollback_target():
    installed = ['1.0.0', '1.1.0', '1.2.0']

    assert select_rollback_target(installed, '1.2.0') == '1.1.0'
    assert select_rollback_target(installed, '1.2.0', '1.0.0') == '1.0.0'
    with pytest.raises(VersionNotInstalled):
        select_rollback_target(installed, '1.0.0')
    with pytest.raises(VersionNotInstalled):
        select_rollback_target(installed, '1.2.0', '0.9.0')
    with pytest.raises(VersionNotInstalled):
        select_rollback_target([], '1.0.0')
