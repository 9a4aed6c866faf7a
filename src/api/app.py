"""
Supermarket Monitor — Admin API

Watchlist CRUD, recent price history and a manual trigger for the daily
job. Served by uvicorn:

    python -m src.api
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from src.api.deps import get_repository
from src.config import settings
from src.db import create_db_engine
from src.models.repository import WatchlistRepository, init_schema
from src.pipeline.daily_job import run_daily_job

logger = structlog.get_logger(__name__)


class WatchItemIn(BaseModel):
    product_url: str = ""
    product_name: str | None = None
    target_price: float | None = None
    active: bool = True


_INDEX_HTML = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Supermarket Monitor</title>
  <style>
    body { font-family: system-ui, sans-serif; margin: 2rem; }
    table { border-collapse: collapse; margin-bottom: 2rem; }
    td, th { border-bottom: 1px solid #ddd; padding: .3rem .8rem; text-align: left; }
  </style>
</head>
<body>
  <h1>Supermarket Monitor</h1>
  <form id="add">
    <input id="url" placeholder="Product URL" size="60" required>
    <input id="name" placeholder="Name">
    <input id="target" placeholder="Target price" type="number" step="0.01">
    <button>Add</button>
    <button type="button" id="run">Run now</button>
  </form>
  <h2>Watchlist</h2>
  <table id="watchlist"></table>
  <h2>Recent prices</h2>
  <table id="prices"></table>
  <script>
    const fmt = (v) => v == null ? '-' : '€' + Number(v).toFixed(2);
    function cell(row, content) {
      const td = document.createElement('td');
      if (content instanceof Node) td.appendChild(content); else td.textContent = content;
      row.appendChild(td);
    }
    function fill(table, headers, rows) {
      table.replaceChildren();
      const head = table.insertRow();
      for (const h of headers) {
        const th = document.createElement('th');
        th.textContent = h;
        head.appendChild(th);
      }
      for (const cells of rows) {
        const row = table.insertRow();
        for (const c of cells) cell(row, c);
      }
    }
    function link(item) {
      const a = document.createElement('a');
      if (/^https?:[/][/]/i.test(item.product_url)) a.href = item.product_url;
      a.textContent = item.product_name || item.product_url;
      return a;
    }
    function deleteButton(item) {
      const button = document.createElement('button');
      button.dataset.id = item.id;
      button.textContent = 'Delete';
      return button;
    }
    async function refresh() {
      const items = await (await fetch('/api/watchlist')).json();
      fill(document.getElementById('watchlist'),
        ['Name', 'Target', 'Last notified', 'Active', ''],
        items.map((i) => [link(i), fmt(i.target_price), fmt(i.last_notified_price),
          i.active ? 'yes' : 'no', deleteButton(i)]));
      const prices = await (await fetch('/api/prices?limit=50')).json();
      fill(document.getElementById('prices'),
        ['Product', 'Price', 'Captured'],
        prices.map((p) => [p.product, fmt(p.price), p.captured_at]));
    }
    document.getElementById('watchlist').addEventListener('click', async (e) => {
      const id = e.target.getAttribute('data-id');
      if (!id) return;
      await fetch('/api/watchlist/' + id, {method: 'DELETE'});
      refresh();
    });
    document.getElementById('add').addEventListener('submit', async (e) => {
      e.preventDefault();
      const target = document.getElementById('target').value.trim();
      await fetch('/api/watchlist', {
        method: 'POST',
        headers: {'content-type': 'application/json'},
        body: JSON.stringify({
          product_url: document.getElementById('url').value.trim(),
          product_name: document.getElementById('name').value.trim() || null,
          target_price: target ? Number(target) : null,
        }),
      });
      e.target.reset();
      refresh();
    });
    document.getElementById('run').addEventListener('click', async () => {
      await fetch('/api/run', {method: 'POST'});
    });
    refresh();
  </script>
</body>
</html>
"""


async def _run_job_in_background(session_factory: Any) -> None:
    try:
        summary = await run_daily_job(session_factory)
    except Exception as e:
        logger.error(
            "api_daily_job_failed",
            error=str(e),
            error_type=type(e).__name__,
            source="api",
        )
        return
    logger.info("api_daily_job_complete", **summary.as_dict(), source="api")


def create_app(database_url: str | None = None) -> FastAPI:
    """
    Build the admin app.

    Args:
        database_url: Overrides settings.DATABASE_URL (tests use a temp file).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine, session_factory = await create_db_engine(database_url)
        await init_schema(engine)
        app.state.session_factory = session_factory
        logger.info("api_started", source="api")
        yield
        await engine.dispose()
        logger.info("api_stopped", source="api")

    app = FastAPI(
        title="Supermarket Monitor",
        description="Watchlist and price history for supermarket product pages",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return _INDEX_HTML

    @app.get("/api/watchlist")
    async def list_watchlist(repo: WatchlistRepository = Depends(get_repository)) -> list[dict]:
        return [item.to_dict() for item in await repo.list_watch_items()]

    @app.post("/api/watchlist")
    async def save_watch_item(
        body: WatchItemIn,
        repo: WatchlistRepository = Depends(get_repository),
    ) -> dict:
        """Insert or update by product_url."""
        try:
            item = await repo.upsert_watch_item(
                body.product_url,
                product_name=body.product_name,
                target_price=body.target_price,
                active=body.active,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"ok": True, "id": item.id}

    @app.delete("/api/watchlist/{id_or_url:path}")
    async def delete_watch_item(
        id_or_url: str,
        repo: WatchlistRepository = Depends(get_repository),
    ) -> dict:
        """Numeric keys delete by id, anything else by URL."""
        if id_or_url.isdigit():
            deleted = await repo.delete_watch_item(int(id_or_url))
        else:
            deleted = await repo.delete_watch_item_by_url(id_or_url)
        return {"ok": True, "deleted": deleted}

    @app.get("/api/prices")
    async def list_prices(
        limit: int = Query(settings.PRICE_HISTORY_DEFAULT_LIMIT, ge=1, le=1000),
        repo: WatchlistRepository = Depends(get_repository),
    ) -> list[dict]:
        return [row.to_dict() for row in await repo.list_price_history(limit)]

    @app.post("/api/run")
    async def trigger_run(background_tasks: BackgroundTasks) -> dict:
        """Start the daily job and return immediately."""
        background_tasks.add_task(_run_job_in_background, app.state.session_factory)
        return {"ok": True}

    return app


app = create_app()
