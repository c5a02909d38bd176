# cli.py
import os
import sys

import click

from models import STATES
from monitor import InvalidInvocation, Monitor
from retry import RetryRunner, gcloud_start_command, log_info
from settings import ENV_OVERRIDES, RUN_CONFIG_ENV, NotifyConfig, default_db_path
from storage import Storage
from watcher import Watcher, tail_lines


@click.group()
@click.option("--db", "db_path", default=None, envvar="NOTIFY_SLACK_DB",
              help="History database (default ~/.notify_slack/notify.db)")
@click.pass_context
def cli(ctx, db_path):
    """notifyctl - run commands in the background and hear about it on Slack"""
    ctx.obj = {"db_path": os.path.abspath(db_path or default_db_path())}


def _submit(db_path, args):
    if len(args) != 1:
        click.echo("ERROR: A single command string is required.", err=True)
        sys.exit(1)

    db = Storage(db_path)
    config = NotifyConfig.load(db)
    db.close()
    try:
        Monitor(config, db_path=db_path).submit(args[0])
    except InvalidInvocation as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)


# ---------------- Submit ----------------
@cli.command()
@click.argument("command", nargs=-1)
@click.pass_context
def submit(ctx, command):
    """Run COMMAND (one quoted string) in the background and notify Slack"""
    _submit(ctx.obj["db_path"], command)


@click.command(name="notify-slack")
@click.argument("command", nargs=-1)
def notify_slack(command):
    """Usage: notify-slack "bash start_gcp_instance.sh" """
    _submit(os.path.abspath(default_db_path()), command)


@cli.command(hidden=True)
@click.argument("run_id")
@click.pass_context
def watch(ctx, run_id):
    """Wait for a submitted run to exit and send the completion notice"""
    db = Storage(ctx.obj["db_path"])
    run = db.get_run(run_id)
    if os.environ.get(RUN_CONFIG_ENV):
        config = NotifyConfig.from_json(os.environ[RUN_CONFIG_ENV])
    else:
        config = NotifyConfig.load(db)
    db.close()
    if not run:
        click.echo(f"❌ Run {run_id} not found.", err=True)
        sys.exit(1)
    Watcher(run, config, db_path=ctx.obj["db_path"]).run()


# ---------------- List Runs ----------------
@cli.command(name="list")
@click.option("--state", default=None, type=click.Choice(STATES), help="Filter runs by state")
@click.option("--limit", default=50, help="Show at most N runs")
@click.pass_context
def list_runs(ctx, state, limit):
    """List recorded runs, newest first"""
    db = Storage(ctx.obj["db_path"])
    runs = db.list_runs(state=state, limit=limit)
    if not runs:
        click.echo("No runs found.")
        return

    for r in runs:
        exit_code = r.exit_code if r.exit_code is not None else "-"
        click.echo(f"{r.id} | pid={r.pid} | {r.command} | state={r.state} | exit={exit_code} | started={r.started_at}")


# ---------------- Status ----------------
@cli.command()
@click.pass_context
def status(ctx):
    """Show summary of run states"""
    db = Storage(ctx.obj["db_path"])
    counts = db.count_by_state()
    if not counts:
        click.echo("No runs in the system yet.")
        return

    click.echo("📊 Run Status Summary:")
    for state in STATES:
        click.echo(f"  {state}: {counts.get(state, 0)}")


# ---------------- Show ----------------
@cli.command()
@click.argument("run_id")
@click.option("-n", "--lines", default=None, type=int, help="Log lines to show (default: tail_lines config)")
@click.pass_context
def show(ctx, run_id, lines):
    """Show details of a single run"""
    db = Storage(ctx.obj["db_path"])
    run = db.get_run(run_id)
    if not run:
        click.echo(f"❌ Run {run_id} not found.")
        return
    if lines is None:
        lines = NotifyConfig.load(db).tail_lines

    click.echo(f"🔎 Run {run.id}")
    click.echo(f"  Command: {run.command}")
    click.echo(f"  PID: {run.pid}")
    click.echo(f"  State: {run.state}")
    click.echo(f"  Exit code: {run.exit_code if run.exit_code is not None else '-'}")
    click.echo(f"  Started: {run.started_at}")
    click.echo(f"  Finished: {run.finished_at or '-'}")
    click.echo(f"  Log: {run.log_path}")
    click.echo(f"  Last {lines} lines:")
    click.echo(tail_lines(run.log_path, lines) or "(no output)")


# ---------------- Retrying starter ----------------
@cli.command("start-instance")
@click.argument("instance")
@click.option("--zone", required=True, help="Compute Engine zone of the instance")
@click.option("--max-retries", default=100, show_default=True, help="Give up after N attempts")
@click.option("--min-sleep", default=90, show_default=True, help="Shortest pause between attempts (seconds)")
@click.option("--max-sleep", default=120, show_default=True, help="Longest pause between attempts (seconds)")
def start_instance(instance, zone, max_retries, min_sleep, max_sleep):
    """Start a GCP instance, retrying until capacity frees up"""
    try:
        runner = RetryRunner(gcloud_start_command(instance, zone),
                             max_retries=max_retries, min_sleep=min_sleep, max_sleep=max_sleep)
    except ValueError as e:
        raise click.BadParameter(str(e))
    log_info(f"Starting GCP instance: {instance} (zone: {zone})")
    result = runner.run()
    sys.exit(0 if result.succeeded else 1)


# ---------------- Dashboard ----------------
@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, help="Bind port")
@click.pass_context
def dashboard(ctx, host, port):
    """Serve the read-only run dashboard"""
    import uvicorn

    os.environ["NOTIFY_SLACK_DB"] = ctx.obj["db_path"]
    uvicorn.run("dashboard:app", host=host, port=port)


# ---------------- Config management ----------------
@cli.group()
def config():
    """Stored settings (environment variables still win)"""
    pass


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key, value):
    """Set a config key to a value"""
    if key not in NotifyConfig.keys():
        click.echo(f"❌ Unknown config key '{key}'. Known keys: {', '.join(NotifyConfig.keys())}")
        sys.exit(1)
    try:
        NotifyConfig.coerce(key, value)
    except ValueError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)
    db = Storage(ctx.obj["db_path"])
    db.set_config(key, value)
    click.echo(f"🛠️ Config '{key}' set to '{value}'.")


@config.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx, key):
    """Get the effective value of a config key"""
    if key not in NotifyConfig.keys():
        click.echo(f"{key} not set")
        return
    db = Storage(ctx.obj["db_path"])
    effective = getattr(NotifyConfig.load(db), key)
    env_name = ENV_OVERRIDES.get(key)
    if env_name and os.environ.get(env_name):
        source = env_name
    elif db.get_config(key) is not None:
        source = "stored"
    else:
        source = "default"
    click.echo(f"{key}={effective} ({source})")


@config.command("list")
@click.pass_context
def config_list(ctx):
    """List stored config keys"""
    db = Storage(ctx.obj["db_path"])
    rows = db.list_config()
    if not rows:
        click.echo("No config keys set.")
        return
    for row in rows:
        click.echo(f"{row['key']}={row['value']} (updated_at={row['updated_at']})")


# ---------------- Entrypoint ----------------
if __name__ == "__main__":
    cli()
