import json
import os

import pytest

from plugin_installer import MarketplaceReader
from plugin_installer.errors import InvalidIndexSchema, MarketplaceNotCached, NotFoundInMarketplace


def _write_cache(settings, marketplace_id, payload):
    os.makedirs(settings.marketplace_cache_dir, exist_ok=True)
    path = os.path.join(settings.marketplace_cache_dir, f'marketplace-{marketplace_id}.json')
    with open(path, 'w', encoding='utf-8') as f:
        f.write(payload if isinstance(payload, str) else json.dumps(payload))


def test_missing_cache(settings):
    with pytest.raises(MarketplaceNotCached) as exc_info:
        MarketplaceReader(settings).load_index('core')

    assert exc_info.value.context['marketplace_id'] == 'core'


@pytest.mark.parametrize('payload', [
    'not json',
    {'fetchedAt': 'now'},
    {'data': {'schemaVersion': 2, 'plugins': []}},
    {'data': {'schemaVersion': 1}},
    {'data': {'schemaVersion': 1, 'plugins': {'id': 'x'}}},
])
def test_invalid_index_schema(settings, payload):
    _write_cache(settings, 'core', payload)

    with pytest.raises(InvalidIndexSchema):
        MarketplaceReader(settings).load_index('core')


def _raw_version(version, **overrides):
    raw = {
        'version': version,
        'entry': {'path': 'index.js'},
        'dist': {'type': 'zip', 'url': f'https://example.com/{version}.zip', 'sha256': 'a' * 64},
    }
    raw.update(overrides)
    return raw


def test_invalid_versions_and_plugins_are_skipped(settings):
    _write_cache(settings, 'core', {'data': {'schemaVersion': 1, 'plugins': [
        {'id': 'x', 'versions': [
            _raw_version('1.0.0'),
            _raw_version('1.1.0', dist={'type': 'rar', 'url': 'u', 'sha256': 'a' * 64}),
            _raw_version('1.2.0', dist={'type': 'zip', 'url': 'u', 'sha256': 'TODO'}),
            _raw_version('1.3.0', entry={'path': '../index.js'}),
            _raw_version('..'),
            'garbage',
        ]},
        {'name': 'no id', 'versions': [_raw_version('1.0.0')]},
        {'id': 'y', 'versions': None},
    ]}})

    index = MarketplaceReader(settings).load_index('core')

    assert [p.id for p in index.plugins] == ['x', 'y']
    assert [v.version for v in index.plugins[0].versions] == ['1.0.0']
    assert index.plugins[1].versions == []


def test_index_normalization(settings):
    _write_cache(settings, 'core', {'data': {'schemaVersion': 1, 'plugins': [{'id': 'echo-bot', 'versions': [{
        'version': '1.0.0',
        'entry': {'path': '/dist/index.js'},
        'dist': {'type': 'zip', 'url': 'https://example.com/a.zip', 'sha256': '  ' + 'AB' * 32 + ' '},
        'install': {'mode': 'none', 'ignoreScripts': False},
    }]}]}})

    index = MarketplaceReader(settings).load_index('core')
    version = index.plugins[0].versions[0]

    assert version.entry.path == 'dist/index.js'
    assert version.dist.sha256 == 'ab' * 32
    assert version.install.ignore_scripts is False


def test_find_and_list_plugins(settings, market):
    market.publish('core', [
        {'id': 'echo-bot', 'name': 'Echo', 'description': 'Repeats messages\nSecond line', 'versions': [
            market.version('echo-bot', '1.0.0', {'index.js': 'x'}),
            market.version('echo-bot', '2.0.0-beta', {'index.js': 'x'}),
        ]},
        {'id': 'empty', 'versions': []},
    ])
    reader = MarketplaceReader(settings)
    index = reader.load_index('core')

    assert reader.find_plugin(index, 'echo-bot').name == 'Echo'
    with pytest.raises(NotFoundInMarketplace):
        reader.find_plugin(index, 'ghost', marketplace_id='core')

    summaries = {s.id: s for s in reader.list_plugins('core')}
    assert summaries['echo-bot'].latest == '2.0.0-beta'
    assert summaries['echo-bot'].description == 'Repeats messages'
    assert summaries['empty'].latest is None
    assert summaries['empty'].name == 'empty'
