# watcher.py
import os
import time
from collections import deque
from datetime import datetime, timezone

import psutil

from models import FAILED, RUNNING, SUCCEEDED
from notifier import SlackNotifier, result_label
from storage import Storage

# Used when the exit-code marker never shows up
MISSING_EXIT_CODE = 1


def pid_alive(pid):
    """True while ``pid`` is in the process table and not a zombie."""
    try:
        proc = psutil.Process(pid)
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True


def tail_lines(path, n=5):
    """Last ``n`` lines of a log file, or an empty string if it is gone."""
    if not path or n <= 0:
        return ""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as fh:
            lines = deque(fh, maxlen=n)
    except FileNotFoundError:
        return ""
    return "".join(lines).rstrip("\n")


def read_exit_code(path):
    """Consume the exit-code marker: parse it, delete it, default to failure."""
    if not path:
        return MISSING_EXIT_CODE
    try:
        with open(path, "r") as fh:
            raw = fh.read().strip()
    except FileNotFoundError:
        return MISSING_EXIT_CODE
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    try:
        return int(raw)
    except ValueError:
        return MISSING_EXIT_CODE


class Watcher:
    def __init__(self, job_run, config, notifier=None, db_path=None, process=None, sleep=time.sleep):
        self.job_run = job_run
        self.config = config
        self.notifier = notifier or SlackNotifier(config)
        self.db_path = db_path
        self.process = process  # Popen handle when the watcher shares the submitter's runtime
        self.sleep = sleep

    def run(self):
        self._wait_for_exit()

        # Let the marker write land before reading it
        self.sleep(self.config.grace_seconds)

        exit_code = read_exit_code(self.job_run.exit_code_path)
        new_state = SUCCEEDED if exit_code == 0 else FAILED
        self.job_run.exit_code = exit_code
        self.job_run.state = new_state
        self.job_run.finished_at = self._now().isoformat()
        self._record()

        last_lines = tail_lines(self.job_run.log_path, self.config.tail_lines)
        self.notifier.notify_finish(self.job_run, exit_code, last_lines)
        self._log_transition(self.job_run.id, RUNNING, new_state,
                             f"(pid={self.job_run.pid}, {result_label(exit_code)})")
        return exit_code

    def _now(self):
        return datetime.now(timezone.utc)

    def _log_transition(self, run_id, old_state, new_state, extra=""):
        now = self._now().isoformat()
        print(f"[{now}] Run {run_id}: {old_state} → {new_state} {extra}", flush=True)

    def _wait_for_exit(self):
        if self.process is not None:
            self.process.wait()
            return
        while pid_alive(self.job_run.pid):
            self.sleep(self.config.poll_interval)

    def _record(self):
        if not self.db_path:
            return
        db = Storage(self.db_path)
        try:
            db.finish_run(self.job_run.id, self.job_run.state, self.job_run.exit_code, self.job_run.finished_at)
        finally:
            db.close()
