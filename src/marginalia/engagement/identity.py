"""Anonymous reader identity, persisted once per device."""

from __future__ import annotations

import logging
import secrets
import sqlite3
import time
from typing import Optional

from marginalia.library.database import Database

log = logging.getLogger(__name__)

READER_ID_PREFIX = "reader_"


def generate_reader_id() -> str:
    millis = int(time.time() * 1000)
    return f"{READER_ID_PREFIX}{millis}_{secrets.token_hex(5)}"


class IdentityProvider:
    def __init__(self, db: Optional[Database]) -> None:
        self._db = db

    def get_or_create_reader_id(self) -> str:
        """Return the device's reader id, creating and storing it on first use.

        If storage is unavailable a fresh id is returned without being stored;
        engagement made with it will not survive a restart.
        """
        if self._db is None:
            log.warning("No identity storage configured; using a transient reader id")
            return generate_reader_id()

        try:
            existing = self._db.get_reader_id()
            if existing:
                return existing
            reader_id = generate_reader_id()
            self._db.save_reader_id(reader_id)
            # Re-read so two racing writers agree on the first stored id.
            return self._db.get_reader_id() or reader_id
        except sqlite3.Error as e:
            log.warning("Identity storage unavailable (%s); using a transient reader id", e)
            return generate_reader_id()
