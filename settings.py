# settings.py
import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path

DEFAULT_HOME = Path.home() / ".notify_slack"
DEFAULT_LOG_DIR = DEFAULT_HOME / "logs"
DEFAULT_DB_PATH = DEFAULT_HOME / "notify.db"

# config key -> environment variable that overrides it
ENV_OVERRIDES = {
    "webhook_url": "NOTIFY_SLACK_WEBHOOK_URL",
    "username": "NOTIFY_SLACK_USERNAME",
    "log_dir": "NOTIFY_SLACK_LOG_DIR",
}

# Effective config handed from a submitting process to its detached watcher
RUN_CONFIG_ENV = "NOTIFY_SLACK_RUN_CONFIG"


def default_db_path():
    return os.environ.get("NOTIFY_SLACK_DB") or str(DEFAULT_DB_PATH)


@dataclass
class NotifyConfig:
    """Settings shared by the monitor, the watcher and the notifier.

    Resolved once per process: built-in defaults, then values stored with
    ``notifyctl config set``, then environment variables.
    """
    webhook_url: str = ""
    username: str = "ハチワレちゃん"
    log_dir: str = str(DEFAULT_LOG_DIR)
    shell: str = "/bin/sh"
    poll_interval: float = 5.0
    grace_seconds: float = 1.0
    tail_lines: int = 5
    request_timeout: float = 10.0

    @classmethod
    def keys(cls):
        return [f.name for f in fields(cls)]

    @classmethod
    def coerce(cls, key, raw):
        kind = {f.name: f.type for f in fields(cls)}[key]
        if kind not in (int, float):
            return raw
        try:
            return kind(raw)
        except ValueError:
            raise ValueError(f"Invalid value for config '{key}': {raw!r}")

    @classmethod
    def load(cls, db=None, environ=None):
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = db.get_config(f.name) if db is not None else None
            env_name = ENV_OVERRIDES.get(f.name)
            if env_name and environ.get(env_name):
                raw = environ[env_name]
            if raw is not None:
                values[f.name] = cls.coerce(f.name, raw)
        return cls(**values)

    def to_json(self):
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, text):
        data = json.loads(text)
        return cls(**{k: cls.coerce(k, v) for k, v in data.items() if k in cls.keys()})

    def resolved_log_dir(self):
        return Path(self.log_dir).expanduser().resolve()
