"""
Настройки установщика: пути (DATA_DIR, реестр, кэш) и политика оператора.

Отвечает за:
- Чтение путей из переменных окружения
- Сбор всех флагов политики в одну структуру Policy
"""
import logging
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from .constants import (
    CACHE_DIRNAME,
    DEFAULT_DATA_DIR,
    ENV_ALLOW_DEPENDENCY_INSTALL,
    ENV_ALLOW_FS,
    ENV_ALLOW_INSTALL_SCRIPTS,
    ENV_ALLOW_NETWORK,
    ENV_CACHE_DIR,
    ENV_DATA_DIR,
    ENV_DEPENDENCY_REGISTRY,
    ENV_NETWORK_ALLOWLIST,
    ENV_REGISTRY_PATH,
    PLUGINS_DIRNAME,
    REGISTRY_FILENAME,
    TMP_DIRNAME,
    TRUTHY_VALUES,
)

logger = logging.getLogger(__name__)


def _read_bool(env: Mapping[str, str], key: str) -> bool:
    return str(env.get(key, '')).strip().lower() in TRUTHY_VALUES


def _read_str(env: Mapping[str, str], key: str) -> Optional[str]:
    value = str(env.get(key, '')).strip()
    return value or None


@dataclass
class InstallerSettings:
    """Пути, с которыми работает установщик"""
    data_dir: str = DEFAULT_DATA_DIR
    registry_path: Optional[str] = None  # Переопределение пути реестра
    cache_dir: Optional[str] = None  # Переопределение каталога кэша маркетплейсов

    def __post_init__(self):
        self.data_dir = os.path.abspath(self.data_dir)
        if self.registry_path:
            self.registry_path = os.path.abspath(self.registry_path)
        if self.cache_dir:
            self.cache_dir = os.path.abspath(self.cache_dir)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "InstallerSettings":
        env = os.environ if env is None else env
        return cls(
            data_dir=_read_str(env, ENV_DATA_DIR) or DEFAULT_DATA_DIR,
            registry_path=_read_str(env, ENV_REGISTRY_PATH),
            cache_dir=_read_str(env, ENV_CACHE_DIR),
        )

    @property
    def plugins_root(self) -> str:
        return os.path.join(self.data_dir, PLUGINS_DIRNAME)

    @property
    def tmp_dir(self) -> str:
        return os.path.join(self.plugins_root, TMP_DIRNAME)

    @property
    def marketplace_cache_dir(self) -> str:
        return self.cache_dir or os.path.join(self.plugins_root, CACHE_DIRNAME)

    @property
    def default_registry_path(self) -> str:
        """
        Реестр по умолчанию лежит в DATA_DIR, а не в DATA_DIR/plugins.

        Пути модулей записываются относительно каталога реестра, и только
        так установленная версия получает вид ./plugins/<id>/<version>/<entry>.
        Для реестра в DATA_DIR/plugins пути стали бы ./<id>/<version>/<entry>
        и перестали бы совпадать с записями, созданными раньше.
        PLUGINS_CONFIG_PATH переопределяет путь в пределах DATA_DIR.
        """
        return os.path.join(self.data_dir, REGISTRY_FILENAME)

    def plugin_root(self, plugin_id: str) -> str:
        return os.path.join(self.plugins_root, plugin_id)

    def version_dir(self, plugin_id: str, version: str) -> str:
        return os.path.join(self.plugins_root, plugin_id, version)


@dataclass
class Policy:
    """
    Политика оператора для привилегированных действий при установке.

    Флаги:
    - allow_network: плагин может запрашивать сетевой доступ, установка зависимостей может ходить в сеть
    - allow_fs: плагин может запрашивать доступ к файловой системе
    - allow_dependency_install: разрешен запуск установщика зависимостей
    - allow_install_scripts: разрешено выполнение скриптов сборки при установке зависимостей
    - network_allowlist: префиксы разрешенных сетевых правил (пусто - без ограничений)
    - dependency_registry: индекс пакетов по умолчанию
    """
    allow_network: bool = False
    allow_fs: bool = False
    allow_dependency_install: bool = False
    allow_install_scripts: bool = False
    network_allowlist: List[str] = field(default_factory=list)
    dependency_registry: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Policy":
        env = os.environ if env is None else env
        allowlist_raw = _read_str(env, ENV_NETWORK_ALLOWLIST) or ''
        policy = cls(
            allow_network=_read_bool(env, ENV_ALLOW_NETWORK),
            allow_fs=_read_bool(env, ENV_ALLOW_FS),
            allow_dependency_install=_read_bool(env, ENV_ALLOW_DEPENDENCY_INSTALL),
            allow_install_scripts=_read_bool(env, ENV_ALLOW_INSTALL_SCRIPTS),
            network_allowlist=[s.strip() for s in allowlist_raw.split(',') if s.strip()],
            dependency_registry=_read_str(env, ENV_DEPENDENCY_REGISTRY),
        )
        logger.debug(f"🔐 Policy loaded from environment: {policy}")
        return policy
