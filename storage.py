# storage.py
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from models import JobRun, STATES
from settings import default_db_path


class Storage:
    def __init__(self, db_path=None):
        self.db_path = str(db_path or default_db_path())
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        self.conn.row_factory = sqlite3.Row

        # Detached watchers write concurrently, one row each
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute("PRAGMA synchronous=NORMAL;")

        self._init_schema()

    def _init_schema(self):
        # Runs table
        self.conn.execute("""
        CREATE TABLE IF NOT EXISTS runs (
            id TEXT PRIMARY KEY,
            command TEXT NOT NULL,
            label TEXT NOT NULL,
            pid INTEGER,
            log_path TEXT,
            exit_code_path TEXT,
            state TEXT NOT NULL,
            exit_code INTEGER,
            started_at TEXT NOT NULL,
            finished_at TEXT
        )
        """)

        # Config table
        self.conn.execute("""
        CREATE TABLE IF NOT EXISTS config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """)

        self.conn.commit()

    def close(self):
        self.conn.close()

    # ---------------- Run helpers ----------------
    def insert_run(self, run):
        self.conn.execute("""
            INSERT INTO runs (id, command, label, pid, log_path, exit_code_path, state, exit_code, started_at, finished_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (run.id, run.command, run.label, run.pid, run.log_path, run.exit_code_path,
              run.state, run.exit_code, run.started_at, run.finished_at))
        self.conn.commit()

    def finish_run(self, run_id, state, exit_code, finished_at):
        updated = self.conn.execute("""
            UPDATE runs SET state=?, exit_code=?, finished_at=?
            WHERE id=?
        """, (state, exit_code, finished_at, run_id)).rowcount
        self.conn.commit()
        return updated == 1

    def get_run(self, run_id):
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM runs WHERE id=?", (run_id,))
        row = cur.fetchone()
        return JobRun.from_row(row) if row else None

    def list_runs(self, state=None, limit=None):
        if state and state not in STATES:
            raise ValueError(f"Unknown state: {state}")
        sql = "SELECT * FROM runs"
        params = []
        if state:
            sql += " WHERE state=?"
            params.append(state)
        sql += " ORDER BY started_at DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(int(limit))
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return [JobRun.from_row(r) for r in cur.fetchall()]

    def count_by_state(self):
        cur = self.conn.cursor()
        cur.execute("SELECT state, COUNT(*) AS count FROM runs GROUP BY state")
        return {r["state"]: r["count"] for r in cur.fetchall()}

    # ---------------- Config helpers ----------------
    def get_config(self, key, default=None):
        cur = self.conn.cursor()
        cur.execute("SELECT value FROM config WHERE key=?", (key,))
        row = cur.fetchone()
        return row["value"] if row else default

    def set_config(self, key, value):
        now = datetime.now(timezone.utc).isoformat()
        self.conn.execute("""
            INSERT INTO config (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
        """, (key, str(value), now))
        self.conn.commit()

    def list_config(self):
        cur = self.conn.cursor()
        cur.execute("SELECT key, value, updated_at FROM config ORDER BY key")
        return cur.fetchall()
