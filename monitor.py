# monitor.py
"""Run a shell command in the background and report it to a webhook.

``Monitor.submit`` returns as soon as the command is running and the start
notification went out. A watcher then waits for the command to exit and
posts the completion notice with the tail of the log.

A detached watcher runs in its own process and gets the monitor's
``NotifyConfig`` through the environment. It always posts with a
``SlackNotifier`` built from that config; a custom ``notifier`` object only
reaches the completion notice when ``detach=False``.
"""
import os
import re
import subprocess
import sys
import tempfile
import threading
import uuid

from models import JobRun
from notifier import SlackNotifier
from settings import RUN_CONFIG_ENV, default_db_path
from storage import Storage
from watcher import Watcher

_UNSAFE_LABEL_CHARS = re.compile(r"[^A-Za-z0-9._-]")
# Leaves room for "_{pid}.log" under the usual 255-byte name limit
MAX_LABEL_LENGTH = 200

# $1 = command, $2 = exit-code marker path. The subshell keeps `exit N`
# inside the command from skipping the status write.
RECORDER = '(eval "$1"); status=$?; echo "$status" > "$2.tmp" && mv -f "$2.tmp" "$2"; exit "$status"'


class InvalidInvocation(ValueError):
    pass


def command_label(command):
    return command.rsplit("/", 1)[-1]


def sanitize_label(command):
    return _UNSAFE_LABEL_CHARS.sub("_", command_label(command))[:MAX_LABEL_LENGTH]


class JobHandle:
    def __init__(self, run, process=None, watcher_thread=None):
        self.run = run
        self.process = process
        self.watcher_thread = watcher_thread

    @property
    def pid(self):
        return self.run.pid

    @property
    def log_path(self):
        return self.run.log_path

    def join(self, timeout=None):
        """Wait for an in-process watcher; detached watchers are not joinable."""
        if self.watcher_thread is None:
            return True
        self.watcher_thread.join(timeout)
        return not self.watcher_thread.is_alive()


class Monitor:
    def __init__(self, config, notifier=None, db_path=None, detach=True):
        self.config = config
        self.notifier = notifier or SlackNotifier(config)
        self.detach = detach
        # A detached watcher finds its run in the history database from another cwd
        db_path = db_path or (default_db_path() if detach else None)
        self.db_path = os.path.abspath(db_path) if db_path else None

    def submit(self, command):
        if not command or not command.strip():
            raise InvalidInvocation("A single command string is required.")

        log_dir = self.config.resolved_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)

        process, tmp_log, marker = self._spawn(command, log_dir)

        log_path = log_dir / f"{sanitize_label(command)}_{process.pid}.log"
        os.replace(tmp_log, log_path)

        run = JobRun(
            id=uuid.uuid4().hex[:8],
            command=command,
            label=command_label(command),
            pid=process.pid,
            log_path=str(log_path),
            exit_code_path=str(marker),
        )
        print(f"INFO: PID={run.pid}", file=sys.stderr)
        print(f"INFO: LOG={run.log_path}", file=sys.stderr)

        self._record(run)
        self.notifier.notify_start(run)

        if self.detach:
            self._spawn_detached_watcher(run, log_dir)
            # Not waited on here: the child is reaped once this process exits
            return JobHandle(run)

        watcher = Watcher(run, self.config, notifier=self.notifier, db_path=self.db_path, process=process)
        t = threading.Thread(target=watcher.run, name=f"watcher-{run.id}")
        t.start()
        return JobHandle(run, process=process, watcher_thread=t)

    def _spawn(self, command, log_dir):
        fd, tmp_log = tempfile.mkstemp(prefix="tmp.", dir=str(log_dir))
        marker = log_dir / f"exit_code.{uuid.uuid4().hex[:8]}"
        try:
            with os.fdopen(fd, "wb") as out:
                process = subprocess.Popen(
                    [self.config.shell, "-c", RECORDER, "notifyctl", command, str(marker)],
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError:
            os.remove(tmp_log)
            raise
        return process, tmp_log, marker

    def _record(self, run):
        if not self.db_path:
            return
        db = Storage(self.db_path)
        try:
            db.insert_run(run)
        finally:
            db.close()

    def _spawn_detached_watcher(self, run, log_dir):
        here = os.path.dirname(os.path.abspath(__file__))
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(p for p in (here, env.get("PYTHONPATH")) if p)
        env[RUN_CONFIG_ENV] = self.config.to_json()
        argv = [sys.executable, "-m", "cli", "--db", str(self.db_path), "watch", run.id]
        with open(log_dir / "watcher.log", "ab") as out:
            subprocess.Popen(
                argv,
                cwd=str(log_dir),
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=out,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
