# notifier.py
"""Slack incoming-webhook messages for run start and completion.

Delivery is best effort: failures are swallowed and never reach the caller.
The durable log file stays the source of truth when a message is lost.
"""
import json

import requests

START_COLOR = "#003399"
SUCCESS_COLOR = "#2eb886"
FAILURE_COLOR = "#FF0000"
INFO_COLOR = "#808080"


def result_label(exit_code):
    if exit_code == 0:
        return "成功"
    return f"失敗 (exit {exit_code})"


def status_color(exit_code):
    return SUCCESS_COLOR if exit_code == 0 else FAILURE_COLOR


class SlackNotifier:
    def __init__(self, config, session=None):
        self.config = config
        self.session = session or requests.Session()

    def start_payload(self, run):
        return {
            "username": self.config.username,
            "text": f"追跡開始！ (PID： `{run.pid}` )",
            "attachments": [
                {
                    "fallback": "実行コマンド確認",
                    "color": START_COLOR,
                    "title": "実行コマンド",
                    "text": f"`$ {run.command}`",
                },
                {"color": INFO_COLOR, "title": "ログパス", "text": f"`{run.log_path}`"},
            ],
        }

    def finish_payload(self, run, exit_code, last_lines):
        return {
            "username": self.config.username,
            "text": f"{run.label} が終了したってコト!? (PID： `{run.pid}` / {result_label(exit_code)})",
            "attachments": [
                {
                    "color": status_color(exit_code),
                    "title": f"コンソールの最後の{self.config.tail_lines}行",
                    "text": f"```{last_lines}```",
                },
                {"color": INFO_COLOR, "title": "フルログパス", "text": f"`{run.log_path}`"},
            ],
        }

    def post(self, payload):
        """POST ``payload`` form-encoded; returns True on a 2xx answer."""
        if not self.config.webhook_url:
            return False
        try:
            resp = self.session.post(
                self.config.webhook_url,
                data={"payload": json.dumps(payload, ensure_ascii=False)},
                timeout=self.config.request_timeout,
            )
        except requests.RequestException:
            return False
        return resp.ok

    def notify_start(self, run):
        return self.post(self.start_payload(run))

    def notify_finish(self, run, exit_code, last_lines):
        return self.post(self.finish_payload(run, exit_code, last_lines))
