"""
Утилиты для работы с путями и идентификаторами плагинов
"""

import os
import re
from typing import Optional
from urllib.parse import unquote, urlparse

from .constants import PLUGIN_ID_MAX_LENGTH
from .errors import PathEscape, UnsafeArchiveEntry

_INVALID_ID_CHARS = re.compile(r'[^A-Za-z0-9_-]')
_REPEATED_DASHES = re.compile(r'-+')
_EDGE_SEPARATORS = re.compile(r'^[-_]+|[-_]+$')


def sanitize_id(value: Optional[str], default: str = 'plugin') -> str:
    """
    Привести произвольную строку к безопасному id.

    Все символы кроме [A-Za-z0-9_-] заменяются на '-', повторы схлопываются,
    разделители по краям обрезаются, длина ограничивается.
    """
    text = str(value or '').strip()
    text = _INVALID_ID_CHARS.sub('-', text)
    text = _REPEATED_DASHES.sub('-', text)
    text = _EDGE_SEPARATORS.sub('', text)
    return text[:PLUGIN_ID_MAX_LENGTH] or default


def file_url_to_path(url: str) -> str:
    return unquote(urlparse(url).path)


def is_within(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def ensure_under_dir(path: str, root: str) -> str:
    """
    Проверить, что путь (после разрешения симлинков) лежит внутри root.

    Returns:
        Реальный абсолютный путь

    Raises:
        PathEscape: если путь выходит за пределы root
    """
    real = os.path.realpath(os.path.abspath(path))
    root_real = os.path.realpath(os.path.abspath(root))
    if not is_within(real, root_real):
        raise PathEscape(f"Path is outside DATA_DIR: {path}", path=path, root=root)
    return real


def is_safe_archive_path(name: str) -> bool:
    if not name:
        return False
    if name.startswith('/'):
        return False
    if '\\' in name:
        return False
    parts = [p for p in name.split('/') if p]
    if not parts:
        return False
    return not any(p in ('.', '..') for p in parts)


def safe_join(root: str, relative: str) -> str:
    """Соединить root и относительный путь, не позволяя выйти за root"""
    out = os.path.abspath(os.path.join(root, relative))
    if not is_within(out, os.path.abspath(root)) or out == os.path.abspath(root):
        raise UnsafeArchiveEntry(f"Unsafe path traversal: {relative}", entry=relative)
    return out
