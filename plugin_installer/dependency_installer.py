"""
Модуль для установки зависимостей плагинов
"""

import asyncio
import logging
import os
import sys
from typing import List, Optional

from .constants import (
    DEPENDENCY_INSTALL_TIMEOUT,
    DEPENDENCY_TARGET_DIRNAME,
    DEV_REQUIREMENTS_FILENAME,
    INSTALL_MODE_DEPENDENCY,
    NESTED_PACKAGE_DIRNAME,
    PROCESS_OUTPUT_LOG_LIMIT,
    REQUIREMENTS_FILENAME,
)
from .errors import DependencyInstallFailed
from .models import InstallOptions
from .permissions import PermissionGate
from .process_runner import AsyncProcessRunner, ProcessRunner

logger = logging.getLogger(__name__)


class PluginDependencyInstaller:
    """
    Установщик зависимостей плагинов через pip.

    Зависимости ставятся в <project>/site-packages, чтобы не трогать
    окружение основного приложения:
    - production=False добавляет requirements-dev.txt
    - ignore_scripts=True запрещает сборку из исходников (--only-binary=:all:)
    - frozen_lockfile=True требует хэши для всех пакетов (--require-hashes)
    - registry задает --index-url
    """

    def __init__(self, runner: Optional[ProcessRunner] = None, timeout: float = DEPENDENCY_INSTALL_TIMEOUT):
        self.runner = runner or AsyncProcessRunner()
        self.timeout = timeout

    @staticmethod
    def find_project_dir(install_dir: str) -> Optional[str]:
        """Каталог с requirements.txt: корень распаковки или вложенный package/"""
        for candidate in (install_dir, os.path.join(install_dir, NESTED_PACKAGE_DIRNAME)):
            if os.path.isfile(os.path.join(candidate, REQUIREMENTS_FILENAME)):
                return candidate
        return None

    @staticmethod
    def build_command(project_dir: str, options: InstallOptions) -> List[str]:
        cmd = [
            sys.executable, '-m', 'pip', 'install',
            '-r', os.path.join(project_dir, REQUIREMENTS_FILENAME),
        ]
        dev_requirements = os.path.join(project_dir, DEV_REQUIREMENTS_FILENAME)
        if not options.production and os.path.isfile(dev_requirements):
            cmd += ['-r', dev_requirements]
        cmd += ['--target', os.path.join(project_dir, DEPENDENCY_TARGET_DIRNAME)]
        if options.ignore_scripts:
            cmd.append('--only-binary=:all:')
        else:
            cmd.append('--prefer-binary')
        if options.frozen_lockfile:
            cmd.append('--require-hashes')
        if options.registry:
            cmd += ['--index-url', options.registry]
        cmd += ['--no-warn-script-location', '--no-cache-dir', '--disable-pip-version-check']
        return cmd

    async def install(self, install_dir: str, plugin_id: str, options: InstallOptions, gate: PermissionGate) -> str:
        """
        Установить зависимости плагина.

        Args:
            install_dir: Каталог распакованной версии
            plugin_id: ID плагина
            options: Параметры установки
            gate: Проверка политики (повторяется непосредственно перед запуском)

        Returns:
            Каталог проекта, в котором выполнялась установка

        Raises:
            PermissionDenied: политика запрещает установку
            DependencyInstallFailed: pip завершился с ошибкой или по таймауту
        """
        if options.mode != INSTALL_MODE_DEPENDENCY:
            raise DependencyInstallFailed(f"Unsupported install mode: {options.mode}", plugin_id=plugin_id)

        gate.validate_install(options, plugin_id=plugin_id)

        project_dir = self.find_project_dir(install_dir)
        if project_dir is None:
            raise DependencyInstallFailed(
                f"install.mode={INSTALL_MODE_DEPENDENCY} but {REQUIREMENTS_FILENAME} not found after extract",
                plugin_id=plugin_id,
            )

        env = dict(os.environ)
        if options.registry:
            env['PIP_INDEX_URL'] = options.registry

        cmd = self.build_command(project_dir, options)
        logger.info(f"📦 Installing dependencies for plugin {plugin_id}")
        try:
            result = await self.runner.run(cmd, cwd=project_dir, env=env, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"❌ Dependency installation timeout for plugin {plugin_id}")
            raise DependencyInstallFailed("Dependency installation timed out", plugin_id=plugin_id) from e
        except OSError as e:
            logger.error(f"❌ Error starting dependency installation for plugin {plugin_id}: {e}")
            raise DependencyInstallFailed(f"Failed to start installer: {e}", plugin_id=plugin_id) from e

        if result.returncode != 0:
            logger.error(f"❌ Failed to install dependencies for plugin {plugin_id}: {result.stderr}")
            if result.stdout:
                logger.debug(f"📦 Pip stdout: {result.stdout[:PROCESS_OUTPUT_LOG_LIMIT]}")
            raise DependencyInstallFailed(
                f"Dependency installation failed with exit code {result.returncode}",
                plugin_id=plugin_id,
                returncode=result.returncode,
                stderr=result.stderr[-PROCESS_OUTPUT_LOG_LIMIT:],
            )

        if result.stdout:
            logger.debug(f"📦 Pip output: {result.stdout[:PROCESS_OUTPUT_LOG_LIMIT]}")
        logger.info(f"✅ Dependencies installed for plugin {plugin_id}")
        return project_dir
