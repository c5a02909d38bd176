# models.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"
STATES = (RUNNING, SUCCEEDED, FAILED)


def utcnow_iso():
    return datetime.now(timezone.utc).isoformat()


@dataclass
class JobRun:
    id: str
    command: str
    label: str
    pid: Optional[int] = None
    log_path: Optional[str] = None
    exit_code_path: Optional[str] = None
    state: str = RUNNING   # running | succeeded | failed
    exit_code: Optional[int] = None
    started_at: str = field(default_factory=utcnow_iso)
    finished_at: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        return cls(**{k: row[k] for k in row.keys()})

    @property
    def succeeded(self):
        return self.exit_code == 0
