"""
Permission Gate - проверка запрошенных плагином возможностей по политике оператора.

Отвечает за:
- Подстановку значений по умолчанию в разрешения и параметры установки
- Проверку сетевых правил по allow-list
- Проверку доступа к файловой системе
- Проверку права запускать установку зависимостей и скрипты сборки

Все проверки выполняются до любых сетевых и файловых действий установки.
"""
import logging
from typing import Optional

from .constants import INSTALL_MODE_DEPENDENCY, INSTALL_MODE_NONE
from .errors import PermissionDenied
from .models import InstallOptions, InstallSpec, Permissions, PermissionsSpec
from .settings import Policy

logger = logging.getLogger(__name__)


class PermissionGate:
    """Проверка разрешений версии плагина"""

    def __init__(self, policy: Policy):
        self.policy = policy

    @staticmethod
    def resolve(requested: Optional[PermissionsSpec]) -> Permissions:
        """Подставить пустые списки вместо отсутствующих разрешений"""
        if requested is None:
            return Permissions()
        return Permissions(
            network=[str(rule) for rule in (requested.network or [])],
            fs=[str(rule) for rule in (requested.fs or [])],
            instances=[
                item if isinstance(item, int) else str(item)
                for item in (requested.instances or [])
            ],
        )

    def resolve_install(self, requested: Optional[InstallSpec]) -> InstallOptions:
        """
        Подставить значения по умолчанию в параметры установки зависимостей.

        По умолчанию: production и ignore_scripts включены, frozen_lockfile
        выключен, индекс пакетов берется из политики.
        """
        if requested is None:
            return InstallOptions(registry=self.policy.dependency_registry)
        return InstallOptions(
            mode=requested.mode or INSTALL_MODE_NONE,
            production=requested.production is not False,
            ignore_scripts=requested.ignore_scripts is not False,
            frozen_lockfile=requested.frozen_lockfile is True,
            registry=(requested.registry or '').strip() or self.policy.dependency_registry,
        )

    def validate(self, permissions: Permissions, plugin_id: Optional[str] = None) -> None:
        """
        Проверить разрешения по политике.

        Raises:
            PermissionDenied: если хотя бы одно разрешение не допускается
        """
        policy = self.policy

        if permissions.network:
            if not policy.allow_network:
                raise PermissionDenied(
                    "Plugin requests network permission but network access is not enabled",
                    plugin_id=plugin_id,
                    permission="network",
                )
            if policy.network_allowlist:
                for rule in permissions.network:
                    if not self._network_rule_allowed(rule):
                        raise PermissionDenied(
                            f"Network permission not allowed by allow-list: {rule}",
                            plugin_id=plugin_id,
                            permission="network",
                            rule=rule,
                        )

        if permissions.fs and not policy.allow_fs:
            raise PermissionDenied(
                "Plugin requests fs permission but filesystem access is not enabled",
                plugin_id=plugin_id,
                permission="fs",
            )

    def validate_install(self, install: InstallOptions, plugin_id: Optional[str] = None) -> None:
        """
        Проверить, можно ли выполнить установку зависимостей.

        Raises:
            PermissionDenied: если политика запрещает установку, сеть или скрипты
        """
        if install.mode != INSTALL_MODE_DEPENDENCY:
            return

        policy = self.policy
        if not policy.allow_dependency_install:
            raise PermissionDenied(
                "Plugin requires dependency installation but it is not enabled",
                plugin_id=plugin_id,
                permission="dependency-install",
            )
        if not policy.allow_network:
            raise PermissionDenied(
                "Dependency installation requires network access; enable network access",
                plugin_id=plugin_id,
                permission="network",
            )
        if not install.ignore_scripts and not policy.allow_install_scripts:
            raise PermissionDenied(
                "Refusing to run install scripts without the install-scripts permission",
                plugin_id=plugin_id,
                permission="scripts",
            )

    def _network_rule_allowed(self, rule: str) -> bool:
        prefix = rule[:-1] if rule.endswith('*') else rule
        if not prefix.strip():
            # "*" или пустое правило покрыло бы весь allow-list
            logger.warning(f"⚠️ Network rule {rule!r} is too broad for the allow-list")
            return False
        for allowed in self.policy.network_allowlist:
            allowed_prefix = allowed[:-1] if allowed.endswith('*') else allowed
            if prefix.startswith(allowed_prefix) or allowed_prefix.startswith(prefix):
                return True
        logger.debug(f"🔐 Network rule {rule} matches no allow-list entry")
        return False
