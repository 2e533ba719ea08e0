import logging
import threading

logger = logging.getLogger(__name__)


class Interval:
    """Calls ``callback`` every ``seconds`` until cancelled.

    Each firing re-arms a ``threading.Timer``; only one timer is pending at a
    time.
    """

    def __init__(self, seconds, callback):
        self.seconds = seconds
        self.callback = callback
        self._timer = None
        self._lock = threading.Lock()
        self._active = False

    @property
    def active(self):
        return self._active

    def start(self):
        with self._lock:
            if self._active:
                return self
            self._active = True
            self._arm()
        return self

    def cancel(self):
        with self._lock:
            self._active = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _arm(self):
        self._timer = threading.Timer(self.seconds, self._fire)
        self._timer.daemon = True
        self._timer.start()

    def _fire(self):
        if not self._active:
            return
        try:
            self.callback()
        except Exception:
            logger.exception("Interval callback failed")
        with self._lock:
            if self._active:
                self._arm()
