"""
Модуль для безопасной распаковки архивов плагинов (ZIP, TGZ)
"""

import logging
import os
import shutil
import stat
import tarfile
import zipfile
from typing import List, Tuple

from .constants import DIST_TYPE_TGZ, DIST_TYPE_ZIP
from .errors import UnsafeArchiveEntry
from .paths import is_safe_archive_path, safe_join

logger = logging.getLogger(__name__)


class ArchiveHandler:
    """
    Распаковщик архивов плагинов.

    Перед записью хотя бы одного файла проверяются все элементы архива:
    - абсолютные пути, обратные слэши, сегменты '.' и '..' запрещены
    - для TGZ допускаются только обычные файлы и каталоги
    - для ZIP запрещены элементы-симлинки
    Итоговый путь каждого элемента дополнительно проверяется на выход за
    пределы каталога назначения.
    """

    def extract(self, kind: str, archive_path: str, dest_dir: str) -> List[str]:
        """
        Распаковать архив плагина.

        Args:
            kind: 'zip' или 'tgz'
            archive_path: Путь к архиву
            dest_dir: Каталог назначения

        Returns:
            Список записанных файлов (относительно dest_dir)

        Raises:
            UnsafeArchiveEntry: при небезопасном элементе, поврежденном архиве
                или элементах, которые не удается записать (файл "a" и файл "a/b")
        """
        os.makedirs(dest_dir, exist_ok=True)
        logger.info(f"📦 Extracting {kind} archive {archive_path} -> {dest_dir}")

        try:
            if kind == DIST_TYPE_ZIP:
                written = self._extract_zip(archive_path, dest_dir)
            elif kind == DIST_TYPE_TGZ:
                written = self._extract_tgz(archive_path, dest_dir)
            else:
                raise UnsafeArchiveEntry(f"Unsupported dist.type: {kind}", archive=archive_path)
        except UnsafeArchiveEntry as e:
            logger.error(f"❌ Archive extraction aborted for {archive_path}: {e}")
            raise
        except zipfile.BadZipFile as e:
            logger.error(f"❌ Invalid ZIP archive {archive_path}: {e}")
            raise UnsafeArchiveEntry(f"Invalid zip archive: {e}", archive=archive_path) from e
        except tarfile.TarError as e:
            logger.error(f"❌ Invalid TAR archive {archive_path}: {e}")
            raise UnsafeArchiveEntry(f"Invalid tgz archive: {e}", archive=archive_path) from e
        except OSError as e:
            logger.error(f"❌ Cannot write entries of {archive_path}: {e}")
            raise UnsafeArchiveEntry(f"Conflicting archive entries: {e}", archive=archive_path) from e

        logger.debug(f"📦 Extracted {len(written)} file(s) to: {dest_dir}")
        return written

    # ============= ZIP =============

    @staticmethod
    def _zip_entry_is_symlink(info: zipfile.ZipInfo) -> bool:
        mode = info.external_attr >> 16
        return stat.S_ISLNK(mode)

    def _extract_zip(self, archive_path: str, dest_dir: str) -> List[str]:
        with zipfile.ZipFile(archive_path, 'r') as zf:
            plan: List[Tuple[zipfile.ZipInfo, str]] = []
            for info in zf.infolist():
                name = info.filename
                if not is_safe_archive_path(name):
                    raise UnsafeArchiveEntry(f"Unsafe zip entry path: {name}", entry=name)
                if self._zip_entry_is_symlink(info):
                    raise UnsafeArchiveEntry(f"Unsupported zip entry type \"symlink\" for: {name}", entry=name)
                plan.append((info, safe_join(dest_dir, name)))

            written = []
            for info, out_path in plan:
                if info.is_dir():
                    os.makedirs(out_path, exist_ok=True)
                    continue
                os.makedirs(os.path.dirname(out_path), exist_ok=True)
                with zf.open(info, 'r') as src, open(out_path, 'wb') as dst:
                    shutil.copyfileobj(src, dst)
                written.append(os.path.relpath(out_path, dest_dir))
        return written

    # ============= TGZ =============

    def _extract_tgz(self, archive_path: str, dest_dir: str) -> List[str]:
        with tarfile.open(archive_path, 'r:gz') as tf:
            plan: List[Tuple[tarfile.TarInfo, str]] = []
            for member in tf.getmembers():
                name = member.name
                if not is_safe_archive_path(name):
                    raise UnsafeArchiveEntry(f"Unsafe tar entry path: {name}", entry=name)
                if not (member.isfile() or member.isdir()):
                    raise UnsafeArchiveEntry(
                        f"Unsupported tar entry type \"{self._tar_type_name(member)}\" for: {name}",
                        entry=name,
                    )
                plan.append((member, safe_join(dest_dir, name)))

            written = []
            for member, out_path in plan:
                if member.isdir():
                    os.makedirs(out_path, exist_ok=True)
                    continue
                os.makedirs(os.path.dirname(out_path), exist_ok=True)
                src = tf.extractfile(member)
                if src is None:
                    raise UnsafeArchiveEntry(f"Unreadable tar entry: {member.name}", entry=member.name)
                with src, open(out_path, 'wb') as dst:
                    shutil.copyfileobj(src, dst)
                written.append(os.path.relpath(out_path, dest_dir))
        return written

    @staticmethod
    def _tar_type_name(member: tarfile.TarInfo) -> str:
        if member.issym():
            return "symlink"
        if member.islnk():
            return "hardlink"
        if member.ischr() or member.isblk():
            return "device"
        if member.isfifo():
            return "fifo"
        return member.type.decode('ascii', 'replace') if isinstance(member.type, bytes) else str(member.type)
