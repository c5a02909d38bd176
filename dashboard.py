# dashboard.py
from html import escape

from fastapi import Depends, FastAPI
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from models import STATES
from settings import NotifyConfig
from storage import Storage
from watcher import tail_lines

app = FastAPI()


def get_db():
    db = Storage()
    try:
        yield db
    finally:
        db.close()


# ---------- Shared UI ----------
BASE_STYLE = """
  body { font-family: Arial, sans-serif; margin: 0; background: #f9f9f9; color: #333; }
  h1 { background: #003399; color: white; padding: 15px; margin: 0; }
  h2 { margin-top: 30px; color: #003399; }
  .container { padding: 20px; }
  .navbar { background: #002266; padding: 10px 20px; display: flex; gap: 20px; }
  .navbar a { color: white; text-decoration: none; font-weight: bold; }
  table { border-collapse: collapse; width: 100%; margin-top: 10px; background: white; }
  th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
  th { background-color: #003399; color: white; }
  tr:nth-child(even) { background-color: #f2f2f2; }
  .cards { display: grid; grid-template-columns: repeat(auto-fit,minmax(180px,1fr)); gap: 16px; margin-top: 20px; }
  .card { background: white; border: 1px solid #ddd; border-radius: 6px; padding: 12px; }
  .succeeded { color: #2eb886; }
  .failed { color: #FF0000; }
  .muted { color: #555; }
"""


def page(title: str, body_html: str) -> str:
    return f"""
    <html>
    <head>
      <title>{title}</title>
      <style>{BASE_STYLE}</style>
    </head>
    <body>
      <h1>{title}</h1>
      <div class="navbar">
        <a href="/">🏠 Runs</a>
        <a href="/config">⚙ Config</a>
      </div>
      <div class="container">
        {body_html}
      </div>
    </body>
    </html>
    """


# ---------- Home ----------
@app.get("/", response_class=HTMLResponse)
def home(db: Storage = Depends(get_db)):
    counts = db.count_by_state()
    cards = "".join(
        f"<div class='card'><h3 class='{s}'>{s}</h3><p>{counts.get(s, 0)}</p></div>" for s in STATES
    )
    body = f"<div class='cards'>{cards}</div>"

    body += """
    <h2>Recent runs</h2>
    <table>
      <tr><th>ID</th><th>PID</th><th>Command</th><th>State</th><th>Exit</th><th>Started</th><th>Finished</th></tr>
    """
    for r in db.list_runs(limit=50):
        exit_code = r.exit_code if r.exit_code is not None else "-"
        body += (f"<tr><td><a href='/run/{r.id}'>{r.id}</a></td><td>{r.pid}</td><td>{escape(r.command)}</td>"
                 f"<td class='{r.state}'>{r.state}</td><td>{exit_code}</td><td>{r.started_at}</td>"
                 f"<td>{r.finished_at or '-'}</td></tr>")
    body += "</table>"
    return page("📡 notifyctl", body)


@app.get("/status/json", response_class=JSONResponse)
def status_json(db: Storage = Depends(get_db)):
    counts = db.count_by_state()
    return {s: counts.get(s, 0) for s in STATES}


# ---------- Run detail ----------
@app.get("/run/{run_id}", response_class=HTMLResponse)
def run_detail(run_id: str, db: Storage = Depends(get_db)):
    run = db.get_run(run_id)
    if not run:
        return HTMLResponse(page("❌ Run not found", f"<p>Run {escape(run_id)} not found.</p>"), status_code=404)

    config = NotifyConfig.load(db)
    exit_code = run.exit_code if run.exit_code is not None else "-"
    body = f"""
      <div class="cards">
        <div class="card"><b>State</b><p class="{run.state}">{run.state}</p></div>
        <div class="card"><b>PID</b><p>{run.pid}</p></div>
        <div class="card"><b>Exit code</b><p>{exit_code}</p></div>
      </div>

      <h3>Command</h3>
      <pre>{escape(run.command)}</pre>

      <h3>Timestamps</h3>
      <table>
        <tr><th>Started</th><td>{run.started_at}</td></tr>
        <tr><th>Finished</th><td>{run.finished_at or '-'}</td></tr>
      </table>

      <h3>Last {config.tail_lines} lines</h3>
      <pre>{escape(tail_lines(run.log_path, config.tail_lines)) or "(no output)"}</pre>
      <p class="muted">{escape(run.log_path or '-')}</p>

      <p><a href="/run/{run.id}/log">⬇ Full log</a></p>
    """
    return page(f"🔎 Run {run.id}", body)


@app.get("/run/{run_id}/log", response_class=PlainTextResponse)
def run_log(run_id: str, db: Storage = Depends(get_db)):
    run = db.get_run(run_id)
    if not run:
        return PlainTextResponse("(run not found)", status_code=404)
    try:
        with open(run.log_path, "r", encoding="utf-8", errors="replace") as fh:
            return PlainTextResponse(fh.read() or "(no output)")
    except (TypeError, FileNotFoundError):
        return PlainTextResponse("(log file missing)", status_code=404)


# ---------- Config ----------
@app.get("/config", response_class=HTMLResponse)
def config_page(db: Storage = Depends(get_db)):
    rows = db.list_config()
    body = """
      <h2>Stored configuration</h2>
      <table>
        <tr><th>Key</th><th>Value</th><th>Updated</th></tr>
    """
    if not rows:
        body += "</table><p class='muted'>No config entries found.</p>"
    else:
        for r in rows:
            value = "********" if r["key"] == "webhook_url" else escape(r["value"])
            body += f"<tr><td>{r['key']}</td><td>{value}</td><td>{r['updated_at']}</td></tr>"
        body += "</table><p class='muted'>Use CLI config set/get to manage values.</p>"
    return page("⚙ Config", body)
