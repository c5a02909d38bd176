import json
import subprocess
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs

import pytest

from models import JobRun
from notifier import SlackNotifier
from settings import NotifyConfig
from storage import Storage


class RecordingNotifier(SlackNotifier):
    """Builds the real payloads but keeps them instead of posting."""

    def __init__(self, config):
        super().__init__(config)
        self.sent = []

    def post(self, payload):
        self.sent.append(payload)
        return True

    @property
    def texts(self):
        return [p["text"] for p in self.sent]


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def config(log_dir):
    return NotifyConfig(log_dir=str(log_dir), poll_interval=0, grace_seconds=0)


@pytest.fixture
def notifier(config):
    return RecordingNotifier(config)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "notify.db")


@pytest.fixture
def db(db_path):
    storage = Storage(db_path)
    yield storage
    storage.close()


@pytest.fixture
def finished_pid():
    """PID of a process that has already exited and been reaped."""
    proc = subprocess.Popen(["true"])
    proc.wait()
    return proc.pid


@pytest.fixture
def make_run(tmp_path, finished_pid):
    def _make(run_id="abc12345", command="echo hi", log_text="hi\n", marker_text=None, **kwargs):
        log_path = tmp_path / f"run_{run_id}.log"
        log_path.write_text(log_text)
        marker = tmp_path / f"exit_code.{run_id}"
        if marker_text is not None:
            marker.write_text(marker_text)
        fields = dict(id=run_id, command=command, label=command.rsplit("/", 1)[-1],
                      pid=finished_pid, log_path=str(log_path), exit_code_path=str(marker))
        fields.update(kwargs)
        return JobRun(**fields)
    return _make


class _WebhookHandler(BaseHTTPRequestHandler):
    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        form = parse_qs(self.rfile.read(length).decode("utf-8"))
        self.server.payloads.append(json.loads(form["payload"][0]))
        self.send_response(200)
        self.end_headers()
        self.wfile.write(b"ok")

    def log_message(self, *args):
        pass


@pytest.fixture
def webhook(monkeypatch):
    """Local Slack stand-in; ``webhook.payloads`` collects decoded messages."""
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
    monkeypatch.setenv("no_proxy", "127.0.0.1,localhost")
    server = HTTPServer(("127.0.0.1", 0), _WebhookHandler)
    server.payloads = []
    server.url = f"http://127.0.0.1:{server.server_port}/services/T000/B000"
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def wait_for():
    """Poll ``predicate`` until it holds or the timeout passes."""
    def _wait(predicate, timeout=30.0):
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(0.1)
        return predicate()
    return _wait
