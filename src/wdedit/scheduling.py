import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from . import config
from .results import EditResult

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Runs blocking calls on a worker pool and completes them on one foreground thread.

    Every returned future resolves to an EditResult; exceptions never escape a
    task. A task settles its future (and so runs the callbacks attached to it)
    before it stops counting as pending. Continuations count as pending from
    the moment they are registered, so ``wait_idle`` covers chained work that
    has not been submitted yet.
    """

    def __init__(self, max_workers=config.BACKGROUND_MAX_WORKERS):
        self._background = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="wdedit-io")
        self._foreground = ThreadPoolExecutor(max_workers=1, thread_name_prefix="wdedit-main")
        self._pending = 0
        self._idle = threading.Condition()

    def _acquire(self):
        with self._idle:
            self._pending += 1

    def _release(self):
        with self._idle:
            self._pending -= 1
            if self._pending <= 0:
                self._pending = 0
                self._idle.notify_all()

    def pending(self):
        with self._idle:
            return self._pending

    def _run(self, future, fn, args):
        try:
            if future.set_running_or_notify_cancel():
                future.set_result(EditResult.capture(fn, *args))
        finally:
            self._release()

    def _dropped(self, future, task):
        if task.cancelled():
            future.cancel()
            self._release()

    def _submit(self, executor, future, fn, args):
        self._acquire()
        try:
            task = executor.submit(self._run, future, fn, args)
        except RuntimeError:
            self._release()
            raise
        task.add_done_callback(lambda t: self._dropped(future, t))
        return future

    def run_in_background(self, fn, *args):
        return self._submit(self._background, Future(), fn, args)

    def run_on_foreground(self, fn, *args):
        return self._submit(self._foreground, Future(), fn, args)

    def _then(self, executor, upstream, fn, args):
        future = Future()
        self._acquire()

        def _continue(done):
            try:
                if done.cancelled():
                    logger.debug("Upstream task cancelled; dropping %s", fn.__name__)
                    future.cancel()
                    return
                self._submit(executor, future, fn, (done.result(),) + tuple(args))
            except RuntimeError:
                logger.warning("[!] Dispatcher shut down; dropping %s", fn.__name__)
                future.cancel()
            finally:
                self._release()

        upstream.add_done_callback(_continue)
        return future

    def then_in_background(self, upstream, fn, *args):
        """Run fn(result, *args) on the worker pool once upstream has settled."""
        return self._then(self._background, upstream, fn, args)

    def then_on_foreground(self, upstream, fn, *args):
        """Run fn(result, *args) on the foreground thread once upstream has settled."""
        future = self._then(self._foreground, upstream, fn, args)
        future.add_done_callback(_log_foreground_failure)
        return future

    def wait_idle(self, timeout=None):
        """Block until no work is pending; returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def shutdown(self, wait=True):
        self._background.shutdown(wait=wait, cancel_futures=not wait)
        self._foreground.shutdown(wait=wait, cancel_futures=not wait)


def _log_foreground_failure(future):
    if future.cancelled():
        return
    result = future.result()
    if not result.ok:
        logger.error("[!] Foreground callback failed: %s", result.describe(), exc_info=result.cause)
