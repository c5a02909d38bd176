import json
from unittest.mock import MagicMock

import requests

from models import JobRun
from notifier import FAILURE_COLOR, INFO_COLOR, START_COLOR, SUCCESS_COLOR, SlackNotifier, result_label
from settings import NotifyConfig


def make_run():
    return JobRun(id="r1", command="bash /opt/jobs/train.sh", label="train.sh", pid=4242,
                  log_path="/logs/train.sh_4242.log", exit_code_path="/logs/exit_code.x")


def make_notifier(session=None, **overrides):
    config = NotifyConfig(webhook_url="https://hooks.example.test/T000/B000", **overrides)
    return SlackNotifier(config, session=session or MagicMock())


def test_result_label():
    assert result_label(0) == "成功"
    assert result_label(7) == "失敗 (exit 7)"


def test_start_payload():
    payload = make_notifier(username="bot").start_payload(make_run())

    assert payload["username"] == "bot"
    assert payload["text"] == "追跡開始！ (PID： `4242` )"
    command, log = payload["attachments"]
    assert command == {"fallback": "実行コマンド確認", "color": START_COLOR,
                       "title": "実行コマンド", "text": "`$ bash /opt/jobs/train.sh`"}
    assert log == {"color": INFO_COLOR, "title": "ログパス", "text": "`/logs/train.sh_4242.log`"}


def test_finish_payload_success_and_failure():
    notifier = make_notifier()
    ok = notifier.finish_payload(make_run(), 0, "done")
    bad = notifier.finish_payload(make_run(), 3, "boom")

    assert ok["text"] == "train.sh が終了したってコト!? (PID： `4242` / 成功)"
    assert ok["attachments"][0]["color"] == SUCCESS_COLOR
    assert ok["attachments"][0]["text"] == "```done```"
    assert ok["attachments"][1]["title"] == "フルログパス"
    assert "失敗 (exit 3)" in bad["text"]
    assert bad["attachments"][0]["color"] == FAILURE_COLOR


def test_post_sends_form_encoded_payload():
    session = MagicMock()
    session.post.return_value.ok = True
    notifier = make_notifier(session=session, request_timeout=3)

    assert notifier.notify_start(make_run())

    url = session.post.call_args.args[0]
    kwargs = session.post.call_args.kwargs
    assert url == "https://hooks.example.test/T000/B000"
    assert kwargs["timeout"] == 3
    assert json.loads(kwargs["data"]["payload"])["text"].startswith("追跡開始")


def test_delivery_errors_are_swallowed():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("down")
    assert make_notifier(session=session).notify_finish(make_run(), 0, "") is False

    session = MagicMock()
    session.post.return_value.ok = False
    assert make_notifier(session=session).notify_start(make_run()) is False


def test_no_webhook_means_no_request():
    session = MagicMock()
    notifier = SlackNotifier(NotifyConfig(webhook_url=""), session=session)

    assert notifier.notify_start(make_run()) is False
    session.post.assert_not_called()
