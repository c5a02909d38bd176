import random
from types import SimpleNamespace

import pytest

from retry import RetryRunner, gcloud_start_command


def fake_run(codes):
    calls = []
    codes = iter(codes)

    def run(argv):
        calls.append(argv)
        return SimpleNamespace(returncode=next(codes))
    return run, calls


def test_gcloud_start_command():
    assert gcloud_start_command("vm-1", "asia-northeast1-a") == [
        "gcloud", "compute", "instances", "start", "vm-1", "--zone=asia-northeast1-a"]


def test_retries_until_success():
    run, calls = fake_run([1, 1, 0])
    sleeps = []
    runner = RetryRunner(["cmd"], sleep=sleeps.append, run=run, rng=random.Random(0))

    result = runner.run()

    assert result.succeeded
    assert result.attempts == 3
    assert len(calls) == 3
    assert len(sleeps) == 2
    assert all(90 <= s <= 120 for s in sleeps)


def test_gives_up_after_max_retries(capsys):
    run, calls = fake_run([1] * 10)
    runner = RetryRunner(["cmd"], max_retries=4, sleep=lambda s: None, run=run)

    result = runner.run()

    assert not result.succeeded
    assert result.attempts == 4
    assert len(calls) == 4
    assert "Maximum retry attempts (4) reached" in capsys.readouterr().err


def test_missing_executable_counts_as_failed_attempt():
    def run(argv):
        raise FileNotFoundError(argv[0])

    result = RetryRunner(["gcloud"], max_retries=2, sleep=lambda s: None, run=run).run()
    assert not result.succeeded


def test_sleep_bounds():
    runner = RetryRunner(["cmd"], min_sleep=1, max_sleep=3, rng=random.Random(42))
    assert {runner.random_sleep_seconds() for _ in range(200)} == {1, 2, 3}

    with pytest.raises(ValueError):
        RetryRunner(["cmd"], min_sleep=5, max_sleep=1)
