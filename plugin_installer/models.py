"""
Модели данных установщика плагинов.

- Индекс маркетплейса (pydantic, валидируется при чтении кэша;
  невалидные плагины и версии пропускаются с предупреждением)
- Запись реестра плагинов
- Запросы и результаты операций установщика
"""
import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from .constants import (
    INSTALL_MODE_NONE,
    SOURCE_TYPE_MARKETPLACE,
)

logger = logging.getLogger(__name__)

_SHA256_RE = re.compile(r'^[0-9a-f]{64}$')


# ============= Marketplace index =============

class _IndexModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class EntrySpec(_IndexModel):
    type: Literal['file'] = 'file'
    path: str

    @field_validator('path')
    @classmethod
    def _check_path(cls, value: str) -> str:
        path = str(value or '').strip().lstrip('/')
        if not path:
            raise ValueError('Invalid entry.path')
        normalized = posixpath.normpath(path)
        if '\\' in path or normalized == '..' or normalized.startswith('../'):
            raise ValueError(f'entry.path escapes the package root: {value}')
        return path


class DistSpec(_IndexModel):
    type: Literal['zip', 'tgz']
    url: str
    sha256: str

    @field_validator('url')
    @classmethod
    def _check_url(cls, value: str) -> str:
        url = str(value or '').strip()
        if not url:
            raise ValueError('Missing dist.url')
        return url

    @field_validator('sha256')
    @classmethod
    def _check_sha256(cls, value: str) -> str:
        digest = str(value or '').strip().lower()
        if not _SHA256_RE.match(digest):
            raise ValueError('Invalid sha256 (expected 64 hex chars)')
        return digest


class InstallSpec(_IndexModel):
    mode: Literal['none', 'dependency-install'] = INSTALL_MODE_NONE
    production: Optional[bool] = None
    ignore_scripts: Optional[bool] = Field(default=None, alias='ignoreScripts')
    frozen_lockfile: Optional[bool] = Field(default=None, alias='frozenLockfile')
    registry: Optional[str] = None


class PermissionsSpec(_IndexModel):
    network: Optional[List[str]] = None
    fs: Optional[List[str]] = None
    instances: Optional[List[Union[int, str]]] = None


class PluginVersion(_IndexModel):
    version: str
    entry: EntrySpec
    dist: DistSpec
    install: Optional[InstallSpec] = None
    permissions: Optional[PermissionsSpec] = None

    @field_validator('version')
    @classmethod
    def _check_version(cls, value: str) -> str:
        # Версия становится именем каталога установки
        version = str(value or '').strip()
        if not version or version in ('.', '..') or '/' in version or '\\' in version:
            raise ValueError(f'Invalid version: {value!r}')
        return version


class MarketplacePlugin(_IndexModel):
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    versions: List[PluginVersion] = Field(default_factory=list)

    @field_validator('versions', mode='before')
    @classmethod
    def _drop_invalid_versions(cls, value: Any, info: ValidationInfo) -> Any:
        """Невалидная версия пропускается, остальные версии плагина остаются доступны"""
        if value is None:
            return []
        if not isinstance(value, list):
            return value
        plugin_id = info.data.get('id')
        versions = []
        for raw in value:
            try:
                versions.append(PluginVersion.model_validate(raw))
            except ValidationError as e:
                label = raw.get('version') if isinstance(raw, dict) else raw
                logger.warning(
                    f"⚠️ Skipping invalid version {label!r} of plugin {plugin_id}: {e.error_count()} error(s)"
                )
        return versions


class MarketplaceIndex(_IndexModel):
    schema_version: Literal[1] = Field(alias='schemaVersion')
    name: Optional[str] = None
    plugins: List[MarketplacePlugin]

    @field_validator('plugins', mode='before')
    @classmethod
    def _drop_invalid_plugins(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        plugins = []
        for raw in value:
            try:
                plugins.append(MarketplacePlugin.model_validate(raw))
            except ValidationError as e:
                label = raw.get('id') if isinstance(raw, dict) else raw
                logger.warning(f"⚠️ Skipping invalid marketplace plugin {label!r}: {e.error_count()} error(s)")
        return plugins


# ============= Resolved descriptors =============

@dataclass
class Permissions:
    """Разрешения версии плагина после подстановки значений по умолчанию"""
    network: List[str] = field(default_factory=list)
    fs: List[str] = field(default_factory=list)
    instances: List[Union[int, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'network': list(self.network),
            'fs': list(self.fs),
            'instances': list(self.instances),
        }


@dataclass
class InstallOptions:
    """Параметры установки зависимостей после подстановки значений по умолчанию"""
    mode: str = INSTALL_MODE_NONE
    production: bool = True
    ignore_scripts: bool = True
    frozen_lockfile: bool = False
    registry: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'mode': self.mode,
            'production': self.production,
            'ignoreScripts': self.ignore_scripts,
            'frozenLockfile': self.frozen_lockfile,
        }
        if self.registry:
            data['registry'] = self.registry
        return data


# ============= Registry =============

@dataclass
class PluginRecord:
    """Запись реестра плагинов"""
    id: str
    module: str
    enabled: bool = True
    config: Any = None
    source: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'id': self.id, 'module': self.module, 'enabled': self.enabled}
        if self.config is not None:
            data['config'] = self.config
        if self.source is not None:
            data['source'] = self.source
        return data

    @property
    def source_version(self) -> Optional[str]:
        if isinstance(self.source, dict):
            version = self.source.get('version')
            if isinstance(version, str) and version:
                return version
        return None

    @property
    def source_marketplace_id(self) -> Optional[str]:
        if isinstance(self.source, dict):
            marketplace_id = self.source.get('marketplaceId')
            if isinstance(marketplace_id, str) and marketplace_id:
                return marketplace_id
        return None


@dataclass
class RegistrySnapshot:
    path: str
    records: List[PluginRecord]
    exists: bool
    missing: List[str] = field(default_factory=list)  # id плагинов с отсутствующим entry-файлом

    def find(self, plugin_id: str) -> Optional[PluginRecord]:
        for record in self.records:
            if record.id == plugin_id:
                return record
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'path': self.path,
            'exists': self.exists,
            'records': [r.to_dict() for r in self.records],
            'missing': list(self.missing),
        }


# ============= Requests =============

@dataclass
class InstallRequest:
    marketplace_id: str
    plugin_id: str
    version: Optional[str] = None
    enabled: Optional[bool] = None
    config: Any = None
    dry_run: bool = False


@dataclass
class UpgradeRequest:
    marketplace_id: Optional[str] = None
    version: Optional[str] = None
    dry_run: bool = False


@dataclass
class RollbackRequest:
    version: Optional[str] = None
    dry_run: bool = False


@dataclass
class UninstallRequest:
    remove_files: bool = False
    dry_run: bool = False


# ============= Results =============

def build_source(
    marketplace_id: str,
    plugin_id: str,
    version: PluginVersion,
    install: InstallOptions,
    permissions: Permissions,
) -> Dict[str, Any]:
    """Дескриптор происхождения, который сохраняется в записи реестра"""
    return {
        'type': SOURCE_TYPE_MARKETPLACE,
        'marketplaceId': marketplace_id,
        'pluginId': plugin_id,
        'version': version.version,
        'dist': {'type': version.dist.type, 'url': version.dist.url, 'sha256': version.dist.sha256},
        'install': install.to_dict(),
        'permissions': permissions.to_dict(),
    }


@dataclass
class InstallResult:
    id: str
    version: str
    entry_path: str
    module: str
    install_dir: str
    permissions: Permissions
    source: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'version': self.version,
            'entryPath': self.entry_path,
            'module': self.module,
            'installDir': self.install_dir,
            'permissions': self.permissions.to_dict(),
            'source': self.source,
        }


@dataclass
class RollbackResult:
    id: str
    from_version: str
    to_version: str
    module: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'from': self.from_version, 'to': self.to_version, 'module': self.module}


@dataclass
class UninstallResult:
    id: str
    removed: bool
    files_removed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'removed': self.removed, 'filesRemoved': self.files_removed}


@dataclass
class VersionsInfo:
    id: str
    current: Optional[str]
    installed: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'current': self.current, 'installed': list(self.installed)}


@dataclass
class MarketplacePluginSummary:
    id: str
    name: str
    latest: Optional[str]
    versions: List[str]
    description: Optional[str] = None
