import json
import sqlite3
import threading
from contextlib import closing
from pathlib import Path

from . import config
from .utils import utc_now_iso

CREATE_PREFERENCES = """
CREATE TABLE IF NOT EXISTS preferences (
    key TEXT PRIMARY KEY,
    value TEXT,
    updated_at TEXT
)
"""


class SQLitePreferenceStore:
    """
    SQLite-backed key/value store for preferences written by the upload flow.

    Values are stored JSON-encoded so booleans and strings come back typed.
    Each thread gets its own connection; the table exists before any of them
    is opened.
    """

    def __init__(self, db_path=config.PREFERENCES_DB):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections = []
        self._connections_lock = threading.Lock()
        with closing(self._connect()) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(CREATE_PREFERENCES)
            conn.commit()

    def _connect(self):
        # Connections are only used by the thread that opened them; close() may run elsewhere.
        conn = sqlite3.connect(self.db_path, timeout=5.0, check_same_thread=False)
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _get_conn(self):
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._local.conn = self._connect()
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _get(self, key):
        row = self._get_conn().execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        if row is None or row[0] is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            return None

    def get_string(self, key, default=None):
        value = self._get(key)
        if value is None:
            return default
        return value if isinstance(value, str) else str(value)

    def get_boolean(self, key, default=False):
        value = self._get(key)
        if isinstance(value, bool):
            return value
        return default

    def put_many(self, rows):
        if not rows:
            return
        conn = self._get_conn()
        now = utc_now_iso()
        payload = [(key, json.dumps(value, ensure_ascii=True), now) for key, value in rows.items()]
        conn.execute("BEGIN")
        conn.executemany(
            """
            INSERT INTO preferences (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value=excluded.value,
                updated_at=excluded.updated_at
            """,
            payload,
        )
        conn.commit()

    def put_string(self, key, value):
        self.put_many({key: str(value)})

    def put_boolean(self, key, value):
        self.put_many({key: bool(value)})

    def remove(self, key):
        conn = self._get_conn()
        conn.execute("DELETE FROM preferences WHERE key = ?", (key,))
        conn.commit()

    def close(self):
        """Close every per-thread connection opened so far."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()
