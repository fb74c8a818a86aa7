import json
import logging
import threading
from pathlib import Path

from tqdm import tqdm

from . import config
from .messages import render
from .utils import utc_now_iso

logger = logging.getLogger(__name__)


class EditLog:
    """Append-only JSONL log of per-step edit outcomes."""

    def __init__(self, log_path=config.EDIT_LOG_FILE, flush_every=config.EDIT_LOG_FLUSH_EVERY):
        """Initialize log with target file and shared run_id."""
        self.log_path = Path(log_path)
        self.run_id = config.RUN_ID
        self.flush_every = flush_every
        self.buffer = []
        self._lock = threading.Lock()

    def log(self, record):
        """Buffer a single JSON object line enriched with the run identifier and timestamp."""
        enriched = {"run_id": self.run_id, "ts": utc_now_iso()}
        enriched.update(record)
        with self._lock:
            self.buffer.append(json.dumps(enriched, ensure_ascii=True, default=str))
            should_flush = len(self.buffer) >= self.flush_every
        if should_flush:
            self.flush()

    def flush(self):
        """Flush any buffered JSONL lines to disk."""
        with self._lock:
            if not self.buffer:
                return
            lines = list(self.buffer)
            self.buffer.clear()
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a", encoding="utf-8") as fh:
            fh.write("\n".join(lines))
            fh.write("\n")


class EditOutcomeNotifier:
    """Surface for edit outcomes: the success listener, user messages and logs."""

    def notify_success(self, listener):
        raise NotImplementedError

    def notify_user_message(self, message_key, *args):
        raise NotImplementedError

    def log(self, level, message, *args):
        raise NotImplementedError

    def record(self, event):
        """Optional structured side effect; ignored unless a subclass keeps an edit log."""


class LoggingNotifier(EditOutcomeNotifier):
    """
    Renders user messages from the catalog and writes them through a sink.

    The default sink is tqdm.write so messages print cleanly above an active
    progress bar. Every rendered message is also kept in ``messages``.
    """

    def __init__(self, locale=config.DEFAULT_LOCALE, sink=None, edit_log=None):
        self.locale = locale
        self.sink = sink or tqdm.write
        self.edit_log = edit_log
        self.messages = []
        self.success_count = 0
        self.failure_count = 0

    def notify_success(self, listener):
        self.success_count += 1
        if listener is not None:
            listener()

    def notify_user_message(self, message_key, *args):
        text = render(message_key, *args, locale=self.locale)
        if message_key == config.MESSAGE_EDIT_FAILURE:
            self.failure_count += 1
        self.messages.append(text)
        self.sink(text)

    def log(self, level, message, *args):
        logger.log(level, message, *args)

    def record(self, event):
        if self.edit_log is not None:
            self.edit_log.log(event)

    def close(self):
        if self.edit_log is not None:
            self.edit_log.flush()
