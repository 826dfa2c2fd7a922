"""One-shot completion signal for a provisioning attempt."""

import threading
from concurrent.futures import Future, InvalidStateError
from typing import Optional


class CompletionSignal:
    """Settles its future exactly once; later resolve/reject calls are ignored."""

    def __init__(self, logger):
        self.logger = logger
        self._future: Future = Future()
        self._lock = threading.Lock()
        self._settled = False

    @property
    def future(self) -> Future:
        return self._future

    @property
    def settled(self) -> bool:
        return self._settled

    def resolve(self) -> bool:
        return self._settle(None)

    def reject(self, error: BaseException) -> bool:
        return self._settle(error)

    def _settle(self, error: Optional[BaseException]) -> bool:
        with self._lock:
            if self._settled or self._future.done():
                self.logger.debug("Ignoring late settlement: %s", error or "resolved")
                return False
            self._settled = True

        try:
            if error is None:
                self._future.set_result(None)
            else:
                self._future.set_exception(error)
        except InvalidStateError:
            self.logger.debug("Completion future was cancelled before settlement.")
            return False
        return True
