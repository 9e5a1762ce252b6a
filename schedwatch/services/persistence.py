"""
Handles all database interactions for the schedule watcher.
"""
import logging
import sqlite3
from typing import Dict, List, Optional

from schedwatch.config import DB_FILE

STATE_KEY = "state"


class DatabaseManager:
    """Manages all SQLite database operations."""

    def __init__(self, db_file=DB_FILE):
        try:
            # Handlers and background tasks may run on other threads than the one that connected
            self.conn = sqlite3.connect(db_file, check_same_thread=False)
            self._create_tables()
            logging.debug(f"Database connection established: {db_file}")
        except Exception as e:
            logging.error(f"Failed to initialize database: {e}", exc_info=True)
            raise

    def _create_tables(self):
        """Creates all necessary tables if they don't already exist."""
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS app_data (
                key TEXT PRIMARY KEY,
                value BLOB
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS check_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
                log_type TEXT NOT NULL,
                message TEXT,
                status TEXT
            )
        """)
        self.conn.commit()

    # --- State document methods ---
    def save_state(self, document: str):
        """Replaces the persisted state document in a single transaction."""
        try:
            with self.conn:
                self.conn.execute(
                    "INSERT OR REPLACE INTO app_data (key, value) VALUES (?, ?)",
                    (STATE_KEY, document),
                )
            logging.debug(f"State saved ({len(document)} bytes)")
        except Exception as e:
            logging.error(f"Failed to save state: {e}", exc_info=True)
            raise

    def load_state(self) -> Optional[str]:
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT value FROM app_data WHERE key = ?", (STATE_KEY,))
            row = cursor.fetchone()
            if not row or row[0] is None:
                return None
            value = row[0]
            return value.decode("utf-8") if isinstance(value, bytes) else value
        except Exception as e:
            logging.error(f"Failed to load state: {e}", exc_info=True)
            raise

    # --- Check logs methods ---
    def log_check_event(self, log_type: str, message: str, status: str = "info"):
        """Log a check event (check start, check end, notification failures, etc.)."""
        try:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO check_logs (log_type, message, status)
                VALUES (?, ?, ?)
            """, (log_type, message, status))
            self.conn.commit()
            logging.debug(f"Logged check event: {log_type} - {message}")
        except Exception as e:
            logging.error(f"Failed to log check event: {e}", exc_info=True)
            raise

    def get_check_logs(self, limit: int = 100, log_type: Optional[str] = None) -> List[Dict]:
        """Get check logs, newest first, optionally filtered by log_type."""
        try:
            cursor = self.conn.cursor()
            if log_type:
                cursor.execute("""
                    SELECT id, timestamp, log_type, message, status
                    FROM check_logs
                    WHERE log_type = ?
                    ORDER BY id DESC
                    LIMIT ?
                """, (log_type, limit))
            else:
                cursor.execute("""
                    SELECT id, timestamp, log_type, message, status
                    FROM check_logs
                    ORDER BY id DESC
                    LIMIT ?
                """, (limit,))

            rows = cursor.fetchall()
            return [
                {
                    "id": row[0],
                    "timestamp": row[1],
                    "log_type": row[2],
                    "message": row[3],
                    "status": row[4]
                }
                for row in rows
            ]
        except Exception as e:
            logging.error(f"Failed to get check logs: {e}", exc_info=True)
            raise

    def close(self):
        """Closes the database connection."""
        self.conn.close()
