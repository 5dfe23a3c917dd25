import logging
from concurrent.futures import ThreadPoolExecutor

from flask import has_app_context

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """
    Fire-and-forget runner for best-effort side effects (audit writes,
    session activity bumps). Failures are logged here and never reach the
    caller.
    """

    def __init__(self, app=None):
        self.app = None
        self._executor = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        if app.config.get("ASYNC_SIDE_EFFECTS", True):
            self._executor = ThreadPoolExecutor(
                max_workers=app.config.get("BACKGROUND_WORKERS", 4),
                thread_name_prefix="trustgate-bg",
            )

    def submit(self, fn, *args, **kwargs):
        if self._executor is None:
            self._run_inline(fn, args, kwargs)
            return None
        try:
            return self._executor.submit(self._run_in_worker, fn, args, kwargs)
        except RuntimeError:
            # executor already shut down (interpreter exit)
            logger.warning("Background pool closed, running %s inline", _name(fn))
            self._run_inline(fn, args, kwargs)
            return None

    def shutdown(self, wait=True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def _run_inline(self, fn, args, kwargs):
        try:
            if has_app_context():
                fn(*args, **kwargs)
            else:
                with self.app.app_context():
                    fn(*args, **kwargs)
        except Exception:
            logger.exception("Background task %s failed", _name(fn))

    def _run_in_worker(self, fn, args, kwargs):
        try:
            with self.app.app_context():
                fn(*args, **kwargs)
        except Exception:
            logger.exception("Background task %s failed", _name(fn))


def _name(fn):
    return getattr(fn, "__qualname__", repr(fn))
