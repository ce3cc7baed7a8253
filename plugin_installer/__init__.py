"""
Plugin Installer - установка плагинов из маркетплейса и управление их версиями.

Структура:
- installer.py - install / upgrade / rollback / uninstall и запросы на чтение
- registry_store.py - реестр плагинов (атомарная запись, .bak, миграция)
- versions.py - сравнение и выбор версий, цель отката
- permissions.py - проверка разрешений по политике оператора
- archive_handler.py - безопасная распаковка архивов (zip, tgz)
- marketplace.py - чтение закэшированных индексов маркетплейсов
- downloader.py - скачивание архивов с подсчетом SHA-256
- dependency_installer.py - установка зависимостей плагина через pip
- metadata_reader.py - plugin-install.json и конфигурация по умолчанию
- install_lock.py - FIFO-блокировка изменяющих операций
- settings.py - пути и политика из переменных окружения
- errors.py - типизированные ошибки
"""

from .archive_handler import ArchiveHandler
from .dependency_installer import PluginDependencyInstaller
from .downloader import ArchiveDownloader
from .errors import PluginInstallerError
from .install_lock import InstallLock
from .installer import PluginInstaller
from .marketplace import MarketplaceReader
from .models import (
    InstallRequest,
    InstallResult,
    PluginRecord,
    RegistrySnapshot,
    RollbackRequest,
    RollbackResult,
    UninstallRequest,
    UninstallResult,
    UpgradeRequest,
    VersionsInfo,
)
from .permissions import PermissionGate
from .process_runner import AsyncProcessRunner, ProcessResult, ProcessRunner
from .registry_store import RegistryStore
from .settings import InstallerSettings, Policy
from .versions import compare_versions, pick_version

__all__ = [
    'PluginInstaller',
    'RegistryStore',
    'MarketplaceReader',
    'PermissionGate',
    'ArchiveHandler',
    'ArchiveDownloader',
    'PluginDependencyInstaller',
    'InstallLock',
    'InstallerSettings',
    'Policy',
    'ProcessRunner',
    'AsyncProcessRunner',
    'ProcessResult',
    'PluginInstallerError',
    'InstallRequest',
    'InstallResult',
    'UpgradeRequest',
    'RollbackRequest',
    'RollbackResult',
    'UninstallRequest',
    'UninstallResult',
    'VersionsInfo',
    'PluginRecord',
    'RegistrySnapshot',
    'compare_versions',
    'pick_version',
]
