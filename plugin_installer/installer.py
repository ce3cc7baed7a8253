"""
Установщик плагинов из маркетплейса.

Отвечает за:
- Установку версии: выбор версии, проверку разрешений, скачивание,
  проверку SHA-256, распаковку, установку зависимостей, регистрацию
- Обновление и откат на уже распакованную версию
- Удаление записи (и при необходимости файлов) плагина
- Запросы только на чтение: версии на диске, содержимое реестра, каталог маркетплейса

Все изменяющие операции выполняются под общей FIFO-блокировкой.
"""

import asyncio
import logging
import os
import posixpath
import shutil
from typing import List, Optional, Tuple

from .archive_handler import ArchiveHandler
from .constants import INSTALL_MODE_NONE, NESTED_PACKAGE_DIRNAME
from .dependency_installer import PluginDependencyInstaller
from .downloader import ArchiveDownloader
from .errors import (
    AlreadyOnVersion,
    ChecksumMismatch,
    EntryNotFound,
    InstallMetadataMissing,
    MissingMarketplaceId,
    PluginNotInstalled,
)
from .install_lock import InstallLock
from .marketplace import MarketplaceReader
from .metadata_reader import PluginMetadataReader
from .models import (
    InstallRequest,
    InstallResult,
    MarketplacePluginSummary,
    PluginRecord,
    RegistrySnapshot,
    RollbackRequest,
    RollbackResult,
    UninstallRequest,
    UninstallResult,
    UpgradeRequest,
    VersionsInfo,
    build_source,
)
from .paths import is_within, safe_join, sanitize_id
from .permissions import PermissionGate
from .registry_store import RegistryStore
from .settings import InstallerSettings, Policy
from .versions import list_installed_versions, pick_version, select_rollback_target

logger = logging.getLogger(__name__)


class PluginInstaller:
    """Жизненный цикл плагинов: install / upgrade / rollback / uninstall"""

    def __init__(
        self,
        settings: Optional[InstallerSettings] = None,
        policy: Optional[Policy] = None,
        store: Optional[RegistryStore] = None,
        marketplace: Optional[MarketplaceReader] = None,
        downloader: Optional[ArchiveDownloader] = None,
        archive_handler: Optional[ArchiveHandler] = None,
        dependency_installer: Optional[PluginDependencyInstaller] = None,
        lock: Optional[InstallLock] = None,
    ):
        self.settings = settings or InstallerSettings.from_env()
        self._policy = policy
        self.store = store or RegistryStore(self.settings)
        self.marketplace = marketplace or MarketplaceReader(self.settings)
        self.downloader = downloader or ArchiveDownloader()
        self.archive_handler = archive_handler or ArchiveHandler()
        self.dependency_installer = dependency_installer or PluginDependencyInstaller()
        self.lock = lock or InstallLock()
        self.metadata = PluginMetadataReader()

    @property
    def policy(self) -> Policy:
        """Явно переданная политика или политика из окружения на момент вызова"""
        return self._policy if self._policy is not None else Policy.from_env()

    # ============= Install =============

    async def install(self, request: InstallRequest) -> InstallResult:
        """
        Установить версию плагина из закэшированного индекса маркетплейса.

        Raises:
            MarketplaceNotCached, InvalidIndexSchema, NotFoundInMarketplace,
            VersionNotFound, PermissionDenied, DownloadFailed, ChecksumMismatch,
            UnsafeArchiveEntry, DependencyInstallFailed, EntryNotFound
        """
        async with self.lock.hold(f"install {request.plugin_id}"):
            return await self._install_unlocked(request)

    async def _install_unlocked(self, request: InstallRequest) -> InstallResult:
        marketplace_id = sanitize_id(request.marketplace_id, default='market')
        plugin_id = sanitize_id(request.plugin_id)

        existing = self.store.find(plugin_id)
        enabled = request.enabled if request.enabled is not None else (existing.enabled if existing else True)
        config = request.config if request.config is not None else (existing.config if existing else None)

        index = self.marketplace.load_index(marketplace_id)
        plugin = self.marketplace.find_plugin(index, plugin_id, marketplace_id=marketplace_id)
        version = pick_version(plugin.versions, request.version, plugin_id=plugin_id)

        gate = PermissionGate(self.policy)
        permissions = gate.resolve(version.permissions)
        install_options = gate.resolve_install(version.install)
        gate.validate(permissions, plugin_id=plugin_id)
        gate.validate_install(install_options, plugin_id=plugin_id)

        install_dir = self.settings.version_dir(plugin_id, version.version)
        archive_path = os.path.join(self.settings.tmp_dir, f"{plugin_id}-{version.version}.{version.dist.type}")
        source = build_source(marketplace_id, plugin_id, version, install_options, permissions)

        if request.dry_run:
            module, _absolute = self.store.normalize_module(os.path.join(install_dir, version.entry.path))
            logger.info(f"🔍 Dry run: {plugin_id}@{version.version} would be installed as {module}")
            return InstallResult(
                id=plugin_id,
                version=version.version,
                entry_path=version.entry.path,
                module=module,
                install_dir=install_dir,
                permissions=permissions,
                source=source,
            )

        logger.info(f"📦 Installing plugin {plugin_id}@{version.version} from marketplace {marketplace_id}")
        dir_touched = False
        try:
            info = await self.downloader.download(version.dist.url, archive_path)
            if info.sha256 != version.dist.sha256:
                raise ChecksumMismatch(
                    version.dist.sha256,
                    info.sha256,
                    plugin_id=plugin_id,
                    version=version.version,
                )

            dir_touched = True
            if os.path.exists(install_dir):
                shutil.rmtree(install_dir)
            os.makedirs(install_dir)

            await asyncio.to_thread(self.archive_handler.extract, version.dist.type, archive_path, install_dir)

            if install_options.mode != INSTALL_MODE_NONE:
                await self.dependency_installer.install(install_dir, plugin_id, install_options, gate)

            entry_path, entry_file = self._resolve_entry(install_dir, version.entry.path, plugin_id)

            if config is None:
                config = self.metadata.load_default_config(install_dir)

            self.metadata.write_install_meta(install_dir, source, entry_path)
            record = self.store.upsert(entry_file, plugin_id=plugin_id, enabled=enabled, config=config, source=source)
        except BaseException:
            if dir_touched:
                logger.warning(f"🧹 Cleaning up failed install of {plugin_id}@{version.version}")
                shutil.rmtree(install_dir, ignore_errors=True)
            raise
        finally:
            if os.path.exists(archive_path):
                os.unlink(archive_path)

        logger.info(f"✅ Plugin {plugin_id}@{version.version} installed: {record.module}")
        return InstallResult(
            id=plugin_id,
            version=version.version,
            entry_path=entry_path,
            module=record.module,
            install_dir=install_dir,
            permissions=permissions,
            source=source,
        )

    @staticmethod
    def _resolve_entry(install_dir: str, entry_path: str, plugin_id: str) -> Tuple[str, str]:
        """Найти entry-файл в корне распаковки или во вложенном package/"""
        for relative in (entry_path, posixpath.join(NESTED_PACKAGE_DIRNAME, entry_path)):
            candidate = safe_join(install_dir, relative)
            if os.path.isfile(candidate):
                return relative, candidate
        raise EntryNotFound(f"Entry file not found: {entry_path}", plugin_id=plugin_id, path=entry_path)

    # ============= Upgrade / Rollback =============

    async def upgrade(self, plugin_id: str, request: Optional[UpgradeRequest] = None) -> InstallResult:
        """
        Обновить установленный плагин до указанной или последней версии.

        Raises:
            PluginNotInstalled: записи нет
            MissingMarketplaceId: маркетплейс не передан и не записан в source
            AlreadyOnVersion: целевая версия уже текущая
        """
        request = request or UpgradeRequest()
        key = sanitize_id(plugin_id)

        async with self.lock.hold(f"upgrade {key}"):
            record = self.store.find(key)
            if record is None:
                raise PluginNotInstalled(f"Plugin not installed: {key}", plugin_id=key)

            current = self._current_version(record)
            marketplace_id = request.marketplace_id or record.source_marketplace_id
            if not marketplace_id:
                raise MissingMarketplaceId(
                    f"Cannot determine marketplace for plugin {key}; pass marketplace_id",
                    plugin_id=key,
                )

            index = self.marketplace.load_index(marketplace_id)
            plugin = self.marketplace.find_plugin(index, key, marketplace_id=marketplace_id)
            target = pick_version(plugin.versions, request.version, plugin_id=key)
            if current is not None and target.version == current:
                raise AlreadyOnVersion(f"Plugin {key} is already on version {current}", plugin_id=key, version=current)

            logger.info(f"📦 Upgrading plugin {key}: {current} -> {target.version}")
            return await self._install_unlocked(InstallRequest(
                marketplace_id=marketplace_id,
                plugin_id=key,
                version=target.version,
                dry_run=request.dry_run,
            ))

    async def rollback(self, plugin_id: str, request: Optional[RollbackRequest] = None) -> RollbackResult:
        """
        Переключить плагин на ранее распакованную версию без скачивания.

        Raises:
            PluginNotInstalled: записи нет или текущая версия неизвестна
            VersionNotInstalled: целевой версии нет на диске
            InstallMetadataMissing: у целевой версии нет plugin-install.json с entry.path
        """
        request = request or RollbackRequest()
        key = sanitize_id(plugin_id)

        async with self.lock.hold(f"rollback {key}"):
            record = self.store.find(key)
            current = self._current_version(record) if record else None
            if current is None:
                raise PluginNotInstalled(f"Plugin not installed: {key}", plugin_id=key)

            installed = list_installed_versions(self.settings.plugin_root(key))
            target = select_rollback_target(installed, current, request.version)

            install_dir = self.settings.version_dir(key, target)
            meta = self.metadata.read_install_meta(install_dir)
            entry_path = self.metadata.entry_path_from_meta(meta)
            if not entry_path:
                raise InstallMetadataMissing(
                    f"Install metadata missing for {key}@{target}",
                    plugin_id=key,
                    version=target,
                )

            entry_file = safe_join(install_dir, entry_path)
            module, _absolute = self.store.normalize_module(entry_file)

            if request.dry_run:
                logger.info(f"🔍 Dry run: {key} would roll back {current} -> {target}")
            else:
                self.store.patch(key, module=entry_file, source={**meta, 'version': target})
                logger.info(f"✅ Plugin {key} rolled back: {current} -> {target}")

            return RollbackResult(id=key, from_version=current, to_version=target, module=module)

    # ============= Uninstall =============

    async def uninstall(self, plugin_id: str, request: Optional[UninstallRequest] = None) -> UninstallResult:
        """Удалить запись плагина и, если попросили, все его версии на диске"""
        request = request or UninstallRequest()
        key = sanitize_id(plugin_id)

        async with self.lock.hold(f"uninstall {key}"):
            plugin_root = self.settings.plugin_root(key)
            if request.dry_run:
                # removed: есть ли запись; файлы при пробном запуске не трогаются
                removed = self.store.find(key) is not None
                return UninstallResult(id=key, removed=removed, files_removed=False)

            remove_files = request.remove_files and os.path.isdir(plugin_root)
            removed = self.store.remove(key)
            if remove_files:
                shutil.rmtree(plugin_root)
                logger.info(f"🗑️ Removed plugin files: {plugin_root}")

            if not removed:
                logger.info(f"ℹ️ Plugin {key} was not in the registry")
            return UninstallResult(id=key, removed=removed, files_removed=remove_files)

    # ============= Queries =============

    async def get_versions(self, plugin_id: str) -> VersionsInfo:
        key = sanitize_id(plugin_id)
        record = self.store.find(key)
        return VersionsInfo(
            id=key,
            current=self._current_version(record) if record else None,
            installed=list_installed_versions(self.settings.plugin_root(key)),
        )

    async def list_registry(self) -> RegistrySnapshot:
        """Содержимое реестра и id плагинов, у которых нет entry-файла"""
        snapshot = self.store.read()
        missing: List[str] = []
        for record in snapshot.records:
            module_path = self.store.resolve_module(record)
            if not os.path.exists(module_path):
                logger.warning(f"⚠️ Plugin {record.id} module not found: {module_path}")
                missing.append(record.id)
        snapshot.missing = missing
        return snapshot

    async def list_available(self, marketplace_id: str) -> List[MarketplacePluginSummary]:
        return self.marketplace.list_plugins(sanitize_id(marketplace_id, default='market'))

    # ============= Helpers =============

    def _current_version(self, record: PluginRecord) -> Optional[str]:
        """Текущая версия из source или из пути модуля plugins/<id>/<version>/..."""
        if record.source_version:
            return record.source_version

        plugin_root = os.path.realpath(self.settings.plugin_root(record.id))
        module_path = os.path.realpath(self.store.resolve_module(record))
        if not is_within(module_path, plugin_root) or module_path == plugin_root:
            return None
        parts = os.path.relpath(module_path, plugin_root).split(os.sep)
        return parts[0] if len(parts) > 1 else None
