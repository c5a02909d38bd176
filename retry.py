# retry.py
import random
import subprocess
import sys
import time
from dataclasses import dataclass


def log_info(msg):
    print(f"[INFO] {msg}", flush=True)


def log_error(msg):
    print(f"[ERROR] {msg}", file=sys.stderr, flush=True)


def gcloud_start_command(instance, zone):
    return ["gcloud", "compute", "instances", "start", instance, f"--zone={zone}"]


@dataclass
class RetryResult:
    succeeded: bool
    attempts: int
    elapsed_seconds: float


class RetryRunner:
    """Re-run a command with a random pause until it exits 0 or the cap is hit."""

    def __init__(self, argv, max_retries=100, min_sleep=90, max_sleep=120,
                 sleep=time.sleep, rng=None, run=subprocess.run):
        if min_sleep > max_sleep:
            raise ValueError("min_sleep must not exceed max_sleep")
        self.argv = list(argv)
        self.max_retries = max_retries
        self.min_sleep = min_sleep
        self.max_sleep = max_sleep
        self.sleep = sleep
        self.rng = rng or random.Random()
        self._run = run

    def random_sleep_seconds(self):
        return self.rng.randint(self.min_sleep, self.max_sleep)

    def attempt(self):
        try:
            return self._run(self.argv).returncode == 0
        except OSError as e:
            log_error(f"Could not run {self.argv[0]}: {e}")
            return False

    def run(self):
        start = time.monotonic()
        num_try = 0
        while True:
            num_try += 1
            if num_try > self.max_retries:
                log_error(f"Maximum retry attempts ({self.max_retries}) reached. Aborting.")
                return RetryResult(False, self.max_retries, time.monotonic() - start)

            log_info(f"Attempt {num_try}: {' '.join(self.argv)}")
            if self.attempt():
                elapsed = time.monotonic() - start
                log_info("Command succeeded!")
                log_info(f"Total attempts: {num_try}")
                log_info(f"Elapsed time: {int(elapsed)}s")
                return RetryResult(True, num_try, elapsed)

            sleep_time = self.random_sleep_seconds()
            log_error(f"Command failed (attempt {num_try})")
            log_info(f"Retrying in {sleep_time}s...")
            self.sleep(sleep_time)
