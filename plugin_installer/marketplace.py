"""
Чтение закэшированных индексов маркетплейсов.

Кэш обновляется внешним механизмом и имеет вид
<cache-dir>/marketplace-<id>.json = {"fetchedAt": ..., "url": ..., "data": <index>}.
Этот модуль только читает его.
"""
import json
import logging
import os
from typing import List, Optional

from pydantic import ValidationError

from .constants import MARKETPLACE_CACHE_PREFIX
from .errors import InvalidIndexSchema, MarketplaceNotCached, NotFoundInMarketplace
from .models import MarketplaceIndex, MarketplacePlugin, MarketplacePluginSummary
from .paths import sanitize_id
from .settings import InstallerSettings
from .versions import pick_version

logger = logging.getLogger(__name__)


class MarketplaceReader:
    """Доступ только на чтение к индексам маркетплейсов"""

    def __init__(self, settings: InstallerSettings):
        self.settings = settings

    def cache_path(self, marketplace_id: str) -> str:
        filename = f"{MARKETPLACE_CACHE_PREFIX}{sanitize_id(marketplace_id, default='market')}.json"
        return os.path.join(self.settings.marketplace_cache_dir, filename)

    def load_index(self, marketplace_id: str) -> MarketplaceIndex:
        """
        Загрузить индекс маркетплейса из кэша.

        Raises:
            MarketplaceNotCached: кэша нет
            InvalidIndexSchema: кэш не соответствует схеме индекса
        """
        path = self.cache_path(marketplace_id)
        logger.info(f"🔍 Loading marketplace index {marketplace_id}")
        if not os.path.exists(path):
            raise MarketplaceNotCached(
                f"Marketplace cache not found for \"{marketplace_id}\"; refresh the marketplace first",
                marketplace_id=marketplace_id,
                path=path,
            )

        try:
            with open(path, 'r', encoding='utf-8') as f:
                cached = json.load(f)
        except (OSError, ValueError) as e:
            raise InvalidIndexSchema(f"Unreadable marketplace cache: {e}", marketplace_id=marketplace_id) from e

        data = cached.get('data') if isinstance(cached, dict) else None
        if not isinstance(data, dict):
            raise InvalidIndexSchema("Invalid marketplace index schema", marketplace_id=marketplace_id)

        try:
            index = MarketplaceIndex.model_validate(data)
        except ValidationError as e:
            raise InvalidIndexSchema(
                f"Invalid marketplace index schema: {e.error_count()} error(s)",
                marketplace_id=marketplace_id,
                errors=[err.get('msg') for err in e.errors()],
            ) from e

        logger.info(f"✅ Marketplace index loaded: {marketplace_id} ({len(index.plugins)} plugin(s))")
        return index

    def find_plugin(self, index: MarketplaceIndex, plugin_id: str, marketplace_id: Optional[str] = None) -> MarketplacePlugin:
        key = sanitize_id(plugin_id)
        for plugin in index.plugins:
            if sanitize_id(plugin.id) == key:
                return plugin
        raise NotFoundInMarketplace(
            f"Plugin not found in marketplace: {key}",
            plugin_id=key,
            marketplace_id=marketplace_id,
        )

    def list_plugins(self, marketplace_id: str) -> List[MarketplacePluginSummary]:
        """Плагины индекса с последними версиями"""
        index = self.load_index(marketplace_id)
        summaries = []
        for plugin in index.plugins:
            latest = None
            if plugin.versions:
                latest = pick_version(plugin.versions).version
            summaries.append(MarketplacePluginSummary(
                id=sanitize_id(plugin.id),
                name=plugin.name or plugin.id,
                latest=latest,
                versions=[v.version for v in plugin.versions],
                description=self._describe(plugin),
            ))
        return summaries

    @staticmethod
    def _describe(plugin: MarketplacePlugin) -> Optional[str]:
        description = (plugin.description or '').strip()
        return description.splitlines()[0] if description else None
