import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class DebouncedCall:
    """
    Откладывает вызов func до истечения delay секунд «тишины».

    Каждый schedule() перезапускает таймер, поэтому серия вызовов внутри окна
    приводит к одному запуску func. Одновременно ожидает не больше одного таймера.
    """

    def __init__(self, func: Callable[[], object], delay: float, name: str = "debounced-call"):
        self.func = func
        self.delay = delay
        self.name = name
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.delay, self._fire)
            timer.name = self.name
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> bool:
        """Отменяет ожидающий запуск. Возвращает True, если таймер был."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is None:
            return False
        timer.cancel()
        return True

    def _fire(self) -> None:
        with self._lock:
            if self._timer is not threading.current_thread():
                # таймер успели перезапустить или отменить
                return
            self._timer = None
        try:
            self.func()
        except Exception:
            logger.exception(f"Debounced call '{self.name}' failed")
