"""
Сравнение и выбор версий плагинов.

Версии разбираются как MAJOR.MINOR.PATCH с необязательным суффиксом
(любой хвост: '-beta.1', 'rc1', 'b2', '+build'). Стабильная версия всегда
старше pre-release с теми же MAJOR.MINOR.PATCH. Неразбираемые строки
сравниваются лексически.
"""

import functools
import logging
import os
import re
from typing import List, Optional, Sequence, Tuple

from .errors import VersionNotFound, VersionNotInstalled
from .models import PluginVersion

logger = logging.getLogger(__name__)

_SEMVER_RE = re.compile(r'^v?(\d+)\.(\d+)\.(\d+)(.*)$')


def parse_version(value: str) -> Optional[Tuple[int, int, int, str]]:
    match = _SEMVER_RE.match(str(value or '').strip())
    if not match:
        return None
    major, minor, patch, suffix = match.groups()
    return int(major), int(minor), int(patch), suffix or ''


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def compare_versions(a: str, b: str) -> int:
    """
    Сравнить две версии.

    Returns:
        -1 если a < b, 0 если равны, 1 если a > b
    """
    pa = parse_version(a)
    pb = parse_version(b)
    if pa is None or pb is None:
        return _cmp(a, b)

    for i in range(3):
        diff = _cmp(pa[i], pb[i])
        if diff:
            return diff

    suffix_a, suffix_b = pa[3], pb[3]
    if not suffix_a and suffix_b:
        return 1
    if suffix_a and not suffix_b:
        return -1
    return _cmp(suffix_a, suffix_b)


version_key = functools.cmp_to_key(compare_versions)


def sort_versions(versions: Sequence[str]) -> List[str]:
    return sorted(versions, key=version_key)


def pick_version(
    versions: Sequence[PluginVersion],
    requested: Optional[str] = None,
    plugin_id: Optional[str] = None,
) -> PluginVersion:
    """
    Выбрать версию плагина из индекса маркетплейса.

    Args:
        versions: Доступные версии
        requested: Точная запрошенная версия (None - последняя стабильная)

    Returns:
        Выбранная версия

    Raises:
        VersionNotFound: если версий нет или запрошенная не найдена
    """
    if not versions:
        raise VersionNotFound("No versions available", plugin_id=plugin_id, version=requested)

    if requested:
        for candidate in versions:
            if candidate.version == requested:
                return candidate
        raise VersionNotFound(f"Version not found: {requested}", plugin_id=plugin_id, version=requested)

    return sorted(versions, key=lambda v: version_key(v.version))[-1]


def list_installed_versions(plugin_root: str) -> List[str]:
    """Версии плагина, распакованные на диск, по возрастанию"""
    if not os.path.isdir(plugin_root):
        return []
    names = [
        entry.name
        for entry in os.scandir(plugin_root)
        if entry.is_dir(follow_symlinks=False) and entry.name
    ]
    return sort_versions(names)


def select_rollback_target(installed: Sequence[str], current: str, requested: Optional[str] = None) -> str:
    """
    Определить целевую версию отката.

    Без явной версии берется версия, непосредственно предшествующая текущей.

    Raises:
        VersionNotInstalled: если цели нет на диске
    """
    if not installed:
        raise VersionNotInstalled("No installed versions on disk", current=current)

    target = requested
    if not target:
        previous = [v for v in installed if compare_versions(v, current) < 0]
        if not previous:
            raise VersionNotInstalled("No previous version to rollback to", current=current)
        target = previous[-1]

    if target not in installed:
        raise VersionNotInstalled(f"Target version not installed: {target}", version=target, current=current)

    logger.debug(f"🔍 Rollback target resolved: {current} -> {target}")
    return target
