import asyncio
import logging
import threading
from typing import Any, Coroutine, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundLoop:
    """An event loop running forever on a daemon thread.

    Streamlit reruns the script on every interaction, so long-lived tasks
    (the market store's pumps and consumer) need a loop that outlives a
    single run. Coroutines are submitted from the script thread with `run`.
    """

    def __init__(self, name: str = "wealthdash-loop"):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name=name, daemon=True)
        self._thread.start()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def run(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """Run `coro` on the background loop and block until it finishes.

        Exceptions raised by the coroutine propagate to the caller.
        """
        if not self.running:
            coro.close()
            raise RuntimeError("background loop is stopped")
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout)

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Background loop did not stop within %.1fs", timeout)
            return
        self._loop.close()
