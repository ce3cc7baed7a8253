"""
Запуск внешних процессов.

Узкий интерфейс, чтобы тесты могли подменить запуск процессов.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    returncode: int
    stdout: str = ''
    stderr: str = ''


class ProcessRunner:
    """Базовый интерфейс запуска процессов"""

    async def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        raise NotImplementedError


class AsyncProcessRunner(ProcessRunner):
    """Запуск через asyncio.create_subprocess_exec"""

    async def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        logger.debug(f"⚙️ Running: {' '.join(cmd)} (cwd={cwd})")
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise

        return ProcessResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode('utf-8', 'replace'),
            stderr=stderr.decode('utf-8', 'replace'),
        )
