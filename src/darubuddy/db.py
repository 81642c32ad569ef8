"""SQLite database operations for Darubuddy."""

import json
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from .models import StoredCalculation, parse_record


class Database:
    """SQLite database manager for saved calculations."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        # Saved calculations, stored as their JSON record
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS calculations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                record_type TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                payload TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Calculation operations
    # ========================================================================

    def _insert(self, cursor: sqlite3.Cursor, record: StoredCalculation) -> int:
        payload = record.to_json_dict()
        cursor.execute(
            """
            INSERT INTO calculations (record_type, timestamp, payload, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                record.type,
                record.timestamp.isoformat(),
                json.dumps(payload, ensure_ascii=False),
                datetime.now().isoformat(),
            ),
        )
        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError("Failed to insert calculation record")
        return row_id

    def save_calculation(self, record: StoredCalculation) -> int:
        """Save a calculation record. Saved records are never updated."""
        cursor = self.conn.cursor()
        row_id = self._insert(cursor, record)
        self.conn.commit()
        return row_id

    def import_calculations(self, records: Iterable[dict[str, Any]]) -> int:
        """
        Import raw records, e.g. a browser localStorage export.

        All records are parsed before anything is written, so a bad entry
        leaves the database untouched.

        Returns:
            Number of records imported
        """
        parsed = [parse_record(data) for data in records]
        cursor = self.conn.cursor()
        for record in parsed:
            self._insert(cursor, record)
        self.conn.commit()
        return len(parsed)

    def get_calculation(self, calculation_id: int) -> StoredCalculation | None:
        """Get a saved calculation by id."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT payload FROM calculations WHERE id = ?", (calculation_id,)
        )
        row = cursor.fetchone()
        return parse_record(json.loads(row["payload"])) if row else None

    def get_calculations(self) -> list[tuple[int, StoredCalculation]]:
        """Get all saved calculations, most recently saved first."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT id, payload FROM calculations ORDER BY id DESC")
        return [
            (row["id"], parse_record(json.loads(row["payload"])))
            for row in cursor.fetchall()
        ]
