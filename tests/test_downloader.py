import asyncio
import hashlib

import httpx
import pytest

from plugin_installer import ArchiveDownloader
from plugin_installer.errors import DownloadFailed


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_download_hashes_content(tmp_path):
    body = b'archive-bytes' * 1000
    downloader = ArchiveDownloader(client=_client(lambda request: httpx.Response(200, content=body)))
    dest = tmp_path / 'tmp' / 'plugin.zip'

    info = asyncio.run(downloader.download('https://example.com/plugin.zip', str(dest)))

    assert info.sha256 == hashlib.sha256(body).hexdigest()
    assert info.bytes == len(body)
    assert dest.read_bytes() == body


def test_download_http_error_status(tmp_path):
    downloader = ArchiveDownloader(client=_client(lambda request: httpx.Response(404)))

    with pytest.raises(DownloadFailed) as exc_info:
        asyncio.run(downloader.download('https://example.com/missing.zip', str(tmp_path / 'x.zip')))

    assert exc_info.value.context['status'] == 404


def test_download_transport_error(tmp_path):
    def handler(request):
        raise httpx.ConnectError('connection refused', request=request)

    downloader = ArchiveDownloader(client=_client(handler))

    with pytest.raises(DownloadFailed):
        asyncio.run(downloader.download('https://example.com/plugin.zip', str(tmp_path / 'x.zip')))
