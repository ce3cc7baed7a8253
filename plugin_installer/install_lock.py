"""
Глобальная FIFO-блокировка изменяющих операций установщика.

Каждая операция встает в очередь за предыдущей: ждет ее future и выставляет
свой. Порядок выполнения совпадает с порядком вызовов.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


class InstallLock:
    """Очередь изменяющих операций (один писатель на процесс)"""

    def __init__(self) -> None:
        self._tail: Optional[asyncio.Future] = None
        self._pending = 0

    @property
    def pending(self) -> int:
        """Количество операций, которые держат или ждут блокировку"""
        return self._pending

    def locked(self) -> bool:
        return self._pending > 0

    @asynccontextmanager
    async def hold(self, operation: str = "operation") -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()
        previous = self._tail
        released = loop.create_future()
        self._tail = released
        self._pending += 1

        try:
            if previous is not None and not previous.done():
                logger.debug(f"⏳ {operation} waiting for install lock")
                await asyncio.shield(previous)
        except BaseException:
            # Отмененный ожидающий освобождает очередь только после предшественника
            self._pending -= 1
            if previous is not None and not previous.done():
                previous.add_done_callback(lambda _f: released.done() or released.set_result(None))
            else:
                released.set_result(None)
            raise

        try:
            yield
        finally:
            self._pending -= 1
            if not released.done():
                released.set_result(None)
