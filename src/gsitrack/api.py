"""
gsitrack Web API

FastAPI application that receives the game client's state callbacks and
serves the tracked state to browsers.

Provides:
- Game state integration endpoint (POST / and POST /gsi)
- Live match snapshot and round history
- Session history browsing and deletion
- A small auto-refreshing HTML dashboard
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import HTMLResponse
from starlette.concurrency import run_in_threadpool

from gsitrack import __version__
from gsitrack.core.config import GsiTrackConfig
from gsitrack.sessions import SessionStore
from gsitrack.tracker import TrackerEngine

logger = logging.getLogger(__name__)


def _check_auth(payload: Any, expected_token: str | None) -> None:
    """Reject payloads whose auth token differs from the configured one."""
    if not expected_token:
        return
    auth = payload.get("auth") if isinstance(payload, dict) else None
    token = auth.get("token") if isinstance(auth, dict) else None
    if token != expected_token:
        logger.warning("Rejected feed payload with a missing or wrong auth token")
        raise HTTPException(status_code=403, detail="Invalid auth token")


def create_app(
    tracker: TrackerEngine,
    store: SessionStore | None = None,
    config: GsiTrackConfig | None = None,
) -> FastAPI:
    """
    Build the application around explicitly passed instances.

    Args:
        tracker: Engine receiving feed updates
        store: Session history; history endpoints answer 404/empty without it
        config: Settings, only the server section is read here

    Returns:
        Configured FastAPI app
    """
    config = config or GsiTrackConfig()
    auth_token = config.server.auth_token

    app = FastAPI(
        title="gsitrack",
        description="Live CS:GO match tracker fed by game state integration",
        version=__version__,
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # =========================================================================
    # Feed input
    # =========================================================================

    async def receive_state(request: Request) -> dict[str, str]:
        body = await request.body()
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring feed payload that is not valid JSON: {e}")
            raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

        _check_auth(payload, auth_token)
        await run_in_threadpool(tracker.update_state, payload)
        return {"status": "ok"}

    app.add_api_route("/", receive_state, methods=["POST"], summary="Game state callback")
    app.add_api_route("/gsi", receive_state, methods=["POST"], summary="Game state callback")

    # =========================================================================
    # Live state
    # =========================================================================

    @app.get("/api/stats")
    async def get_stats() -> dict[str, Any]:
        """Current match snapshot."""
        return tracker.get_current_stats().to_dict()

    @app.get("/api/rounds")
    async def get_rounds() -> list[dict[str, Any]]:
        """Rounds of the session being tracked, including an open round."""
        return [r.to_dict() for r in tracker.get_round_history()]

    @app.get("/api/session")
    async def get_current_session() -> dict[str, Any] | None:
        if store is None:
            return None
        session = store.get_current_session()
        return session.to_dict() if session else None

    # =========================================================================
    # History
    # =========================================================================

    @app.get("/api/sessions")
    async def list_sessions(
        steam_id: str | None = Query(None, description="Only sessions of this player"),
        map_name: str | None = Query(None, alias="map", description="Only sessions on this map"),
    ) -> list[dict[str, Any]]:
        """Session summaries, newest first."""
        if store is None:
            return []
        if steam_id:
            sessions = store.get_sessions_by_steam_id(steam_id)
        else:
            sessions = store.get_all_sessions()
        if map_name:
            wanted = map_name.casefold()
            sessions = [s for s in sessions if s.map_name.casefold() == wanted]
        return [s.summary() for s in sessions]

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str) -> dict[str, Any]:
        session = store.get_session(session_id) if store else None
        if session is None:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return session.to_dict()

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: str) -> dict[str, Any]:
        if store is None or not store.delete_session(session_id):
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return {"status": "deleted", "session_id": session_id}

    # =========================================================================
    # Misc
    # =========================================================================

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    @app.get("/", response_class=HTMLResponse)
    async def dashboard() -> HTMLResponse:
        return HTMLResponse(content=DASHBOARD_HTML, headers={"Cache-Control": "no-cache"})

    return app


DASHBOARD_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>gsitrack</title>
<style>
  body { background: #14171c; color: #e6e6e6; font-family: Consolas, monospace; margin: 2rem; }
  h1 { color: #f0a500; font-size: 1.4rem; }
  .grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(260px, 1fr)); gap: 1rem; }
  .card { background: #1e232b; border-radius: 6px; padding: 1rem; }
  .card h2 { font-size: 1rem; margin: 0 0 .5rem; color: #8ab4f8; }
  .row { display: flex; justify-content: space-between; }
  .lost { color: #ff6b6b; }
  .ok { color: #7bd88f; }
</style>
</head>
<body>
<h1>gsitrack</h1>
<div class="grid" id="cards"></div>
<script>
const sections = {
  "Match": s => [["Map", s.map.name], ["Mode", s.map.mode], ["Score (T - CT)", s.map.score_display],
                 ["Round", s.round.number], ["Phase", s.round.phase], ["Round time", s.round.time + "s"]],
  "Player": s => [["Name", s.player.name], ["Team", s.player.team], ["Status", s.player.status],
                  ["Money", "$" + s.player.money], ["K / D / A", `${s.player.kills} / ${s.player.deaths} / ${s.player.assists}`],
                  ["Weapon", s.player.active_weapon]],
  "Bomb": s => [["State", s.bomb.state]],
  "Session": s => [["Rounds", s.session.total_rounds], ["Won", s.session.rounds_won],
                   ["Lost", s.session.rounds_lost], ["Win rate", s.session.win_rate + "%"]],
  "Connection": s => [["Status", s.connection.status], ["Messages", s.connection.messages_received]],
};
function esc(v) { const d = document.createElement("div"); d.textContent = v ?? ""; return d.innerHTML; }
async function refresh() {
  try {
    const s = await (await fetch("/api/stats")).json();
    document.getElementById("cards").innerHTML = Object.entries(sections).map(([title, rows]) =>
      `<div class="card"><h2>${title}</h2>` +
      rows(s).map(([k, v]) => `<div class="row"><span>${k}</span><span>${esc(v)}</span></div>`).join("") +
      "</div>").join("");
    document.title = s.connection.is_connected ? "gsitrack" : "gsitrack (disconnected)";
  } catch (e) {
    document.getElementById("cards").innerHTML = '<div class="card lost">Tracker unreachable</div>';
  }
}
refresh();
setInterval(refresh, 1000);
</script>
</body>
</html>
"""
