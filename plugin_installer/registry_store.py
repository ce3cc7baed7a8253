"""
Реестр плагинов - единственный файл со списком установленных плагинов.

Отвечает за:
- Определение пути реестра (переопределение или DATA_DIR/plugins.yaml)
- Атомарную запись (временный файл + os.replace) с резервной копией .bak
- Восстановление из резервной копии при отсутствии или порче файла
- Однократную миграцию со старых форматов (.yml, .json)
- Нормализацию путей модулей относительно каталога реестра
"""

import json
import logging
import os
import shutil
import tempfile
from typing import Any, List, Optional, Tuple

import yaml

from .constants import BACKUP_SUFFIX, REGISTRY_EXTENSIONS
from .errors import ConfigCorrupted, InvalidModuleSpecifier, PluginNotInstalled
from .models import PluginRecord, RegistrySnapshot
from .paths import ensure_under_dir, file_url_to_path, is_within, sanitize_id
from .settings import InstallerSettings

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def infer_id_from_module(module_path: str) -> str:
    """
    Получить id плагина из пути модуля.

    Для файлов index.* используется имя каталога.
    """
    clean = file_url_to_path(module_path) if module_path.startswith('file://') else module_path
    base, _ext = os.path.splitext(os.path.basename(clean))
    if base.lower() == 'index':
        return os.path.basename(os.path.dirname(clean)) or 'plugin'
    return base or 'plugin'


def _is_yaml(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in ('.yaml', '.yml')


def parse_registry(raw: str, path: str) -> List[PluginRecord]:
    """
    Разобрать содержимое файла реестра.

    Raises:
        ConfigCorrupted: если файл пустой или не разбирается
    """
    if not raw.strip():
        raise ConfigCorrupted("Empty registry file", path=path)
    try:
        data = yaml.safe_load(raw) if _is_yaml(path) else json.loads(raw)
    except (yaml.YAMLError, ValueError) as e:
        raise ConfigCorrupted(f"Malformed registry file: {e}", path=path) from e

    if not isinstance(data, dict):
        raise ConfigCorrupted("Registry root must be a mapping", path=path)

    plugins = data.get('plugins')
    if not isinstance(plugins, list):
        return []

    records = []
    for item in plugins:
        if not isinstance(item, dict):
            continue
        plugin_id = item.get('id')
        module = item.get('module')
        if not isinstance(plugin_id, str) or not plugin_id or not isinstance(module, str) or not module:
            continue
        records.append(PluginRecord(
            id=plugin_id,
            module=module,
            enabled=item.get('enabled') is not False,
            config=item.get('config'),
            source=item.get('source'),
        ))
    return records


def dump_registry(records: List[PluginRecord], path: str) -> str:
    payload = {'plugins': [record.to_dict() for record in records]}
    if _is_yaml(path):
        return yaml.safe_dump(payload, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return json.dumps(payload, indent=2, ensure_ascii=False) + '\n'


class RegistryStore:
    """Хранилище реестра плагинов"""

    def __init__(self, settings: InstallerSettings):
        self.settings = settings

    @property
    def path(self) -> str:
        return self.settings.registry_path or self.settings.default_registry_path

    @property
    def backup_path(self) -> str:
        return self.path + BACKUP_SUFFIX

    def resolve_path(self) -> str:
        """Путь реестра, проверенный на нахождение внутри DATA_DIR"""
        ensure_under_dir(self.path, self.settings.data_dir)
        return self.path

    # ============= Read =============

    def read(self) -> RegistrySnapshot:
        """
        Прочитать реестр.

        Отсутствующий файл восстанавливается из .bak или мигрируется со старого
        формата; испорченный файл заменяется резервной копией. Если ничего не
        помогло, возвращается пустой реестр.
        """
        path = self.resolve_path()

        if not os.path.exists(path):
            self._restore_backup(path, reason="main file missing")

        if not os.path.exists(path):
            migrated = self._migrate_legacy(path)
            if migrated is not None:
                return RegistrySnapshot(path=path, records=migrated, exists=True)

        if not os.path.exists(path):
            return RegistrySnapshot(path=path, records=[], exists=False)

        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = f.read()
            return RegistrySnapshot(path=path, records=parse_registry(raw, path), exists=True)
        except (OSError, ConfigCorrupted) as e:
            logger.error(f"❌ Failed to read registry {path}: {e}, trying backup...")

        records = self._read_backup(path)
        if records is not None:
            return RegistrySnapshot(path=path, records=records, exists=True)

        corrupted = ConfigCorrupted("Registry and backup are unreadable", path=path)
        logger.error(f"❌ {corrupted}; continuing with an empty registry")
        return RegistrySnapshot(path=path, records=[], exists=False)

    def _restore_backup(self, path: str, reason: str) -> None:
        backup = path + BACKUP_SUFFIX
        if not os.path.exists(backup):
            return
        try:
            shutil.copyfile(backup, path)
            logger.warning(f"⚠️ Restored registry from backup ({reason}): {backup}")
        except OSError as e:
            logger.error(f"❌ Failed to restore registry from backup {backup}: {e}")

    def _read_backup(self, path: str) -> Optional[List[PluginRecord]]:
        backup = path + BACKUP_SUFFIX
        if not os.path.exists(backup):
            return None
        try:
            with open(backup, 'r', encoding='utf-8') as f:
                records = parse_registry(f.read(), path)
        except (OSError, ConfigCorrupted) as e:
            logger.error(f"❌ Registry backup is unreadable too: {e}")
            return None

        try:
            shutil.copyfile(backup, path)
            logger.warning("⚠️ Restored registry from backup (main file corrupted)")
        except OSError as e:
            logger.error(f"❌ Failed to copy backup over corrupted registry: {e}")
        return records

    def _legacy_candidates(self, path: str) -> List[str]:
        base, ext = os.path.splitext(path)
        return [base + candidate for candidate in REGISTRY_EXTENSIONS if candidate != ext.lower()]

    def _migrate_legacy(self, path: str) -> Optional[List[PluginRecord]]:
        for candidate in self._legacy_candidates(path):
            if not os.path.exists(candidate):
                continue
            try:
                ensure_under_dir(candidate, self.settings.data_dir)
                with open(candidate, 'r', encoding='utf-8') as f:
                    records = parse_registry(f.read(), candidate)
                self.write(records)
                logger.info(f"📦 Migrated legacy plugins registry {candidate} -> {path}")
                return records
            except Exception as e:
                logger.warning(f"⚠️ Failed to migrate legacy plugins registry {candidate}: {e}")
        return None

    # ============= Write =============

    def write(self, records: List[PluginRecord]) -> str:
        """
        Атомарно записать реестр.

        Перед перезаписью текущий файл копируется в .bak (ошибка копирования
        только логируется). Новое содержимое пишется во временный файл рядом
        и одним rename заменяет основной.
        """
        path = self.resolve_path()
        directory = os.path.dirname(path)
        os.makedirs(directory, exist_ok=True)

        self._backup(path)

        content = dump_registry(records, path)
        fd, tmp_path = tempfile.mkstemp(prefix=os.path.basename(path) + '.', suffix='.tmp', dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.debug(f"💾 Registry written: {path} ({len(records)} plugin(s))")
        return path

    def _backup(self, path: str) -> None:
        if not os.path.exists(path):
            return
        try:
            shutil.copyfile(path, path + BACKUP_SUFFIX)
        except OSError as e:
            logger.warning(f"⚠️ Failed to backup registry {path}: {e}")

    # ============= Module specifiers =============

    def normalize_module(self, module: str) -> Tuple[str, str]:
        """
        Нормализовать спецификатор модуля для хранения в реестре.

        Args:
            module: file:// URL, абсолютный или относительный путь, имя пакета

        Returns:
            (stored, absolute) - хранимая форма и реальный абсолютный путь

        Raises:
            InvalidModuleSpecifier: пустой спецификатор
            PathEscape: путь вне DATA_DIR
        """
        path = self.resolve_path()
        base_dir = os.path.realpath(os.path.dirname(path))

        raw = str(module or '').strip()
        if not raw:
            raise InvalidModuleSpecifier("Missing module")

        candidate = file_url_to_path(raw) if raw.startswith('file://') else os.path.join(base_dir, raw)
        absolute = ensure_under_dir(candidate, self.settings.data_dir)

        if is_within(absolute, base_dir) and absolute != base_dir:
            stored = './' + os.path.relpath(absolute, base_dir).replace(os.sep, '/')
        else:
            stored = absolute
        return stored, absolute

    def resolve_module(self, record: PluginRecord) -> str:
        """Абсолютный путь, на который указывает хранимый спецификатор"""
        module = record.module
        if module.startswith('file://'):
            return os.path.abspath(file_url_to_path(module))
        base_dir = os.path.realpath(os.path.dirname(self.path))
        return os.path.abspath(os.path.join(base_dir, module))

    # ============= Mutations =============

    def find(self, plugin_id: str) -> Optional[PluginRecord]:
        return self.read().find(sanitize_id(plugin_id))

    def upsert(
        self,
        module: str,
        plugin_id: Optional[str] = None,
        enabled: Optional[bool] = None,
        config: Any = None,
        source: Any = None,
    ) -> PluginRecord:
        """Добавить или заменить запись плагина"""
        snapshot = self.read()
        stored, absolute = self.normalize_module(module)
        record = PluginRecord(
            id=sanitize_id(plugin_id or infer_id_from_module(absolute)),
            module=stored,
            enabled=enabled is not False,
            config=config,
            source=source,
        )

        records = [r for r in snapshot.records if r.id != record.id]
        records.append(record)
        records.sort(key=lambda r: r.id)
        self.write(records)

        logger.info(f"✅ Registry record saved: {record.id} -> {record.module}")
        return record

    def patch(
        self,
        plugin_id: str,
        module: Optional[str] = None,
        enabled: Optional[bool] = None,
        config: Any = _UNSET,
        source: Any = _UNSET,
    ) -> PluginRecord:
        """
        Частично обновить запись плагина.

        Если записи нет, она создается при наличии module.

        Raises:
            PluginNotInstalled: записи нет и module не передан
        """
        key = sanitize_id(plugin_id)
        snapshot = self.read()
        existing = snapshot.find(key)

        if existing is None:
            if not module:
                raise PluginNotInstalled(f"Plugin not installed: {key}", plugin_id=key)
            return self.upsert(
                module,
                plugin_id=key,
                enabled=enabled,
                config=None if config is _UNSET else config,
                source=None if source is _UNSET else source,
            )

        updated = PluginRecord(
            id=existing.id,
            module=existing.module,
            enabled=existing.enabled,
            config=existing.config,
            source=existing.source,
        )
        if enabled is not None:
            updated.enabled = bool(enabled)
        if config is not _UNSET:
            updated.config = config
        if source is not _UNSET:
            updated.source = source
        if module and module.strip():
            updated.module, _absolute = self.normalize_module(module)

        records = [updated if r.id == key else r for r in snapshot.records]
        self.write(records)

        logger.info(f"✅ Registry record patched: {key}")
        return updated

    def remove(self, plugin_id: str) -> bool:
        """Удалить запись плагина. Отсутствие записи не является ошибкой."""
        key = sanitize_id(plugin_id)
        snapshot = self.read()
        if snapshot.find(key) is None:
            return False
        self.write([r for r in snapshot.records if r.id != key])
        logger.info(f"🗑️ Registry record removed: {key}")
        return True
