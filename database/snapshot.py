"""
Durable key-value slot holding the whole store as one blob.

The slot is a small SQLite file with a single table. Every save replaces the
previous blob under the same key in one committed statement, so a reader
always sees either the old snapshot or the new one.
"""
import logging
import os
import sqlite3
from contextlib import contextmanager

from config import SNAPSHOT_PATH, SNAPSHOT_KEY
from database.errors import PersistenceError


slot_schema = '''
    CREATE TABLE IF NOT EXISTS slots (
        key TEXT PRIMARY KEY,
        value BLOB NOT NULL
    )
'''


class SnapshotSlot:
    def __init__(self, path: str = SNAPSHOT_PATH, key: str = SNAPSHOT_KEY):
        self.path = path
        self.key = key

    def load(self) -> bytes | None:
        if not os.path.exists(self.path):
            return None

        with self._connect() as conn:
            row = conn.execute('SELECT value FROM slots WHERE key = ?', (self.key,)).fetchone()
            if row is None:
                return None
            return bytes(row[0])

    def save(self, blob: bytes) -> None:
        with self._connect() as conn:
            conn.execute(
                'INSERT OR REPLACE INTO slots (key, value) VALUES (?, ?)',
                (self.key, sqlite3.Binary(blob))
            )
        logging.debug(f"Saved snapshot '{self.key}' ({len(blob)} bytes) to {self.path}")

    def clear(self) -> None:
        if not os.path.exists(self.path):
            return
        with self._connect() as conn:
            conn.execute('DELETE FROM slots WHERE key = ?', (self.key,))
        logging.info(f"Cleared snapshot '{self.key}' in {self.path}")

    @contextmanager
    def _connect(self):
        try:
            directory = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(directory, exist_ok=True)
            conn = sqlite3.connect(self.path)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Cannot open snapshot file {self.path}: {e}") from e

        try:
            conn.execute(slot_schema)
            yield conn
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            conn.rollback()
            raise PersistenceError(f"Snapshot slot '{self.key}' failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
