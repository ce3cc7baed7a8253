import hashlib
import io
import json
import os
import tarfile
import zipfile

import httpx
import pytest

from plugin_installer import ArchiveDownloader, InstallerSettings, PluginInstaller, Policy


def make_zip(files):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w') as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


def make_tgz(files):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode='w:gz') as tf:
        for name, content in files.items():
            data = content.encode('utf-8') if isinstance(content, str) else content
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeMarketplace:
    """Кэш индекса маркетплейса на диске и HTTP-сервер архивов через MockTransport"""

    base_url = 'https://plugins.example.com'

    def __init__(self, settings):
        self.settings = settings
        self.archives = {}
        self.requests = []

    def version(self, plugin_id, version, files, kind='zip', entry='index.js', **extra):
        data = make_zip(files) if kind == 'zip' else make_tgz(files)
        url = f"{self.base_url}/{plugin_id}-{version}.{kind}"
        self.archives[url] = data
        spec = {
            'version': version,
            'entry': {'type': 'file', 'path': entry},
            'dist': {'type': kind, 'url': url, 'sha256': hashlib.sha256(data).hexdigest()},
        }
        spec.update(extra)
        return spec

    def publish(self, marketplace_id, plugins):
        os.makedirs(self.settings.marketplace_cache_dir, exist_ok=True)
        path = os.path.join(self.settings.marketplace_cache_dir, f"marketplace-{marketplace_id}.json")
        payload = {
            'fetchedAt': '2024-01-01T00:00:00Z',
            'url': f"{self.base_url}/{marketplace_id}.json",
            'data': {'schemaVersion': 1, 'name': marketplace_id, 'plugins': plugins},
        }
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f)
        return path

    def handler(self, request):
        url = str(request.url)
        self.requests.append(url)
        if url not in self.archives:
            return httpx.Response(404)
        return httpx.Response(200, content=self.archives[url])

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings(tmp_path):
    return InstallerSettings(data_dir=str(tmp_path / 'data'))


@pytest.fixture
def market(settings):
    return FakeMarketplace(settings)


@pytest.fixture
def make_installer(settings, market):
    def factory(policy=None, **kwargs):
        return PluginInstaller(
            settings=settings,
            policy=policy if policy is not None else Policy(),
            downloader=ArchiveDownloader(client=market.client()),
            **kwargs,
        )
    return factory


@pytest.fixture
def echo_bot(market):
    """Маркетплейс core с echo-bot 1.0.0 и 1.1.0"""
    versions = [
        market.version('echo-bot', '1.0.0', {'index.js': 'module.exports = 1;\n'}),
        market.version('echo-bot', '1.1.0', {'index.js': 'module.exports = 2;\n'}),
    ]
    market.publish('core', [{'id': 'echo-bot', 'name': 'Echo Bot', 'versions': versions}])
    return versions
