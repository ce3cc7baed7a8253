"""
Скачивание архивов плагинов.
Async реализация на httpx: поток пишется в файл и одновременно хэшируется.
"""
import hashlib
import logging
import os
from dataclasses import dataclass
from typing import Optional

import httpx

from .constants import DOWNLOAD_CHUNK_SIZE, DOWNLOAD_CONNECT_TIMEOUT, DOWNLOAD_TIMEOUT
from .errors import DownloadFailed

logger = logging.getLogger(__name__)


@dataclass
class DownloadInfo:
    sha256: str
    bytes: int


class ArchiveDownloader:
    """
    Загрузчик архивов.

    Если client передан, он используется как есть (и не закрывается);
    иначе на каждое скачивание создается свой httpx.AsyncClient.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = DOWNLOAD_TIMEOUT):
        self._client = client
        self.timeout = timeout

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=DOWNLOAD_CONNECT_TIMEOUT),
            follow_redirects=True,
        )

    async def download(self, url: str, dest_path: str) -> DownloadInfo:
        """
        Скачать архив в файл, считая SHA-256.

        Args:
            url: Адрес архива
            dest_path: Куда сохранить

        Returns:
            DownloadInfo с hex-дайджестом и размером

        Raises:
            DownloadFailed: при сетевой ошибке или статусе не 2xx
        """
        logger.info(f"📥 Downloading plugin archive: {url}")
        os.makedirs(os.path.dirname(dest_path), exist_ok=True)

        if self._client is not None:
            info = await self._stream(self._client, url, dest_path)
        else:
            async with self._build_client() as client:
                info = await self._stream(client, url, dest_path)

        logger.info(f"✅ Plugin archive downloaded: {url} ({info.bytes} bytes)")
        return info

    async def _stream(self, client: httpx.AsyncClient, url: str, dest_path: str) -> DownloadInfo:
        digest = hashlib.sha256()
        size = 0
        try:
            async with client.stream('GET', url) as response:
                if not response.is_success:
                    raise DownloadFailed(
                        f"Download failed: {response.status_code} {response.reason_phrase}",
                        url=url,
                        status=response.status_code,
                    )
                with open(dest_path, 'wb') as f:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                        size += len(chunk)
                        digest.update(chunk)
                        f.write(chunk)
        except httpx.HTTPError as e:
            logger.error(f"❌ Download error for {url}: {e}")
            raise DownloadFailed(f"Download failed: {e}", url=url) from e

        return DownloadInfo(sha256=digest.hexdigest(), bytes=size)
