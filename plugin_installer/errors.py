"""
Типизированные ошибки установщика плагинов.

Каждая ошибка несет словарь context (id плагина, версия, путь, контрольные
суммы), чтобы вызывающая сторона могла показать диагностику без доступа
к внутренностям установщика.
"""

from typing import Any, Dict, Optional


class PluginInstallerError(RuntimeError):
    """Базовая ошибка подсистемы установки плагинов"""

    code = "plugin_installer_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.context}


class PathEscape(PluginInstallerError):
    """Путь выходит за пределы DATA_DIR"""
    code = "path_escape"


class InvalidModuleSpecifier(PluginInstallerError):
    code = "invalid_module"


class ConfigCorrupted(PluginInstallerError):
    """Реестр не читается, резервная копия и миграция тоже не помогли"""
    code = "config_corrupted"


class MarketplaceError(PluginInstallerError):
    code = "marketplace_error"


class MarketplaceNotCached(MarketplaceError):
    code = "marketplace_not_cached"


class InvalidIndexSchema(MarketplaceError):
    code = "invalid_index_schema"


class NotFoundError(PluginInstallerError):
    code = "not_found"


class NotFoundInMarketplace(NotFoundError):
    code = "not_found_in_marketplace"


class VersionNotFound(NotFoundError):
    code = "version_not_found"


class PluginNotInstalled(NotFoundError):
    code = "plugin_not_installed"


class MissingMarketplaceId(PluginInstallerError):
    """Не удалось определить маркетплейс, из которого установлен плагин"""
    code = "missing_marketplace_id"


class PermissionDenied(PluginInstallerError):
    """Политика оператора запрещает запрошенную возможность"""
    code = "permission_denied"


class DownloadFailed(PluginInstallerError):
    code = "download_failed"


class ChecksumMismatch(PluginInstallerError):
    code = "checksum_mismatch"

    def __init__(self, expected: str, actual: str, **context: Any):
        super().__init__(
            f"sha256 mismatch: expected={expected} got={actual}",
            expected=expected,
            actual=actual,
            **context,
        )
        self.expected = expected
        self.actual = actual


class UnsafeArchiveEntry(PluginInstallerError):
    code = "unsafe_archive_entry"

    def __init__(self, message: str, entry: Optional[str] = None, **context: Any):
        super().__init__(message, entry=entry, **context)
        self.entry = entry


class DependencyInstallFailed(PluginInstallerError):
    code = "dependency_install_failed"


class EntryNotFound(PluginInstallerError):
    code = "entry_not_found"


class InstallMetadataMissing(PluginInstallerError):
    """Нет метаданных установки - откат не может угадать entry"""
    code = "install_metadata_missing"


class VersionNotInstalled(PluginInstallerError):
    code = "version_not_installed"


class AlreadyOnVersion(PluginInstallerError):
    code = "already_on_version"


__all__ = [
    "PluginInstallerError",
    "PathEscape",
    "InvalidModuleSpecifier",
    "ConfigCorrupted",
    "MarketplaceError",
    "MarketplaceNotCached",
    "InvalidIndexSchema",
    "NotFoundError",
    "NotFoundInMarketplace",
    "VersionNotFound",
    "PluginNotInstalled",
    "MissingMarketplaceId",
    "PermissionDenied",
    "DownloadFailed",
    "ChecksumMismatch",
    "UnsafeArchiveEntry",
    "DependencyInstallFailed",
    "EntryNotFound",
    "InstallMetadataMissing",
    "VersionNotInstalled",
    "AlreadyOnVersion",
]
