"""
Модуль для работы с метаданными установленных версий плагинов
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import yaml

from .constants import DEFAULT_CONFIG_FILENAMES, INSTALL_META_FILENAME, NESTED_PACKAGE_DIRNAME

logger = logging.getLogger(__name__)


class PluginMetadataReader:
    """Чтение и запись plugin-install.json и конфигурации плагина по умолчанию"""

    @staticmethod
    def meta_path(install_dir: str) -> str:
        return os.path.join(install_dir, INSTALL_META_FILENAME)

    @staticmethod
    def write_install_meta(install_dir: str, source: Dict[str, Any], entry_path: str) -> Dict[str, Any]:
        """
        Записать метаданные установки рядом с распакованной версией.

        Args:
            install_dir: Каталог версии
            source: Дескриптор происхождения
            entry_path: Путь к entry-файлу относительно install_dir

        Returns:
            Записанные метаданные
        """
        meta = {
            'installedAt': datetime.now(timezone.utc).isoformat(),
            **source,
            'entry': {'path': entry_path},
        }
        with open(PluginMetadataReader.meta_path(install_dir), 'w', encoding='utf-8') as f:
            json.dump(meta, f, indent=2, ensure_ascii=False)
        return meta

    @staticmethod
    def read_install_meta(install_dir: str) -> Optional[Dict[str, Any]]:
        """
        Прочитать метаданные установки.

        Returns:
            Dict с метаданными или None если файла нет или он поврежден
        """
        path = PluginMetadataReader.meta_path(install_dir)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                meta = json.load(f)
        except FileNotFoundError:
            logger.warning(f"⚠️ Install metadata not found: {path}")
            return None
        except (OSError, ValueError) as e:
            logger.error(f"❌ Invalid install metadata in {path}: {e}")
            return None

        if not isinstance(meta, dict):
            logger.error(f"❌ Install metadata is not an object: {path}")
            return None
        return meta

    @staticmethod
    def entry_path_from_meta(meta: Optional[Dict[str, Any]]) -> Optional[str]:
        if not meta:
            return None
        entry = meta.get('entry')
        path = entry.get('path') if isinstance(entry, dict) else None
        path = str(path or '').strip()
        return path or None

    @staticmethod
    def load_default_config(install_dir: str) -> Optional[Any]:
        """Конфигурация по умолчанию из config.json / config.yaml архива"""
        for base in (install_dir, os.path.join(install_dir, NESTED_PACKAGE_DIRNAME)):
            for filename in DEFAULT_CONFIG_FILENAMES:
                candidate = os.path.join(base, filename)
                if not os.path.isfile(candidate):
                    continue
                try:
                    with open(candidate, 'r', encoding='utf-8') as f:
                        if filename.endswith('.json'):
                            return json.load(f)
                        return yaml.safe_load(f)
                except (OSError, ValueError, yaml.YAMLError) as e:
                    logger.warning(f"⚠️ Failed to load plugin default config {candidate}: {e}")
        return None
