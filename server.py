#!/usr/bin/env python3
"""
Reaction Benchmark Web Server: FastAPI + WebSocket host for the trial engine.

Serves the reaction test over REST and pushes every state change to
connected browsers over a WebSocket. All timing and statistics live in
reaction_engine.py and trial_stats.py; this module only wires them up.

Usage:
    python3 server.py [--host 0.0.0.0] [--port 8000]
    # Open http://<host>:8000 in a browser
"""

import argparse
import json
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ValidationError, field_validator

from reaction_engine import MAX_DELAY_MS, MIN_DELAY_MS, Phase, ReactionTest
from trial_stats import RECENT_DEFAULT, histogram_dict, summary

log = logging.getLogger("benchmark")

MAX_RECENT = 50


def read_delay_range():
    """Stimulus delay bounds (ms) from the environment, falling back to defaults."""
    lo = int(os.environ.get("REACTION_MIN_DELAY_MS", MIN_DELAY_MS))
    hi = int(os.environ.get("REACTION_MAX_DELAY_MS", MAX_DELAY_MS))
    return lo, hi


def build_test():
    lo, hi = read_delay_range()
    return ReactionTest(on_update=on_trial_update, min_delay_ms=lo, max_delay_ms=hi)


@asynccontextmanager
async def lifespan(application):
    global rt

    rt = build_test()
    log.info(f"Server started, stimulus delay {rt.min_delay_ms}..{rt.max_delay_ms} ms")

    yield

    # Shutdown
    rt.shutdown()
    log.info(f"Server stopped after {len(rt.history)} trials")


app = FastAPI(title="Reaction Time Benchmark", lifespan=lifespan)

# CORS for Vite dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

rt: ReactionTest = None


# --- WebSocket manager ---


class ConnectionManager:
    def __init__(self):
        self.connections: list[WebSocket] = []

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self.connections.append(ws)
        log.info(f"Client connected ({len(self.connections)} open)")

    def disconnect(self, ws: WebSocket):
        if ws in self.connections:
            self.connections.remove(ws)
            log.info(f"Client disconnected ({len(self.connections)} open)")

    async def broadcast(self, msg: dict):
        data = json.dumps(msg)
        dead = []
        for ws in self.connections:
            try:
                await ws.send_text(data)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)


manager = ConnectionManager()


async def on_trial_update(trial_state):
    """Engine callback: push the new phase, plus fresh stats once a trial lands."""
    await manager.broadcast(trial_state)
    if trial_state["phase"] == Phase.RESULT.value:
        await manager.broadcast(summary(rt.history))
        await manager.broadcast(histogram_dict(rt.history))


def snapshot():
    """Everything a freshly connected client needs to render."""
    return [rt.to_dict(), summary(rt.history), histogram_dict(rt.history)]


# --- Pydantic models ---


class WsCommand(BaseModel):
    action: str

    @field_validator("action")
    @classmethod
    def known_action(cls, v):
        v = v.strip().lower()
        if v not in ("start", "respond"):
            raise ValueError(f"Unknown action '{v}'")
        return v


# --- REST endpoints ---


@app.get("/api/state")
async def get_state():
    return rt.to_dict()


@app.post("/api/start")
async def api_start():
    await rt.start()
    return rt.to_dict()


@app.post("/api/respond")
async def api_respond():
    await rt.respond()
    return rt.to_dict()


@app.get("/api/stats")
async def get_stats(recent: int = Query(RECENT_DEFAULT, ge=0, le=MAX_RECENT)):
    return summary(rt.history, recent)


@app.get("/api/histogram")
async def get_histogram():
    return histogram_dict(rt.history)


@app.get("/api/history")
async def get_history():
    return {"type": "history", "trials": rt.history.latencies}


# --- WebSocket endpoint ---


async def _handle_command(ws: WebSocket, text: str):
    try:
        cmd = WsCommand(**json.loads(text))
    except (json.JSONDecodeError, TypeError, ValidationError) as e:
        await ws.send_text(json.dumps({"type": "error", "error": str(e)}))
        return
    if cmd.action == "start":
        await rt.start()
    else:
        await rt.respond()


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await manager.connect(ws)
    try:
        for msg in snapshot():
            await ws.send_text(json.dumps(msg))
        while True:
            await _handle_command(ws, await ws.receive_text())
    except WebSocketDisconnect:
        manager.disconnect(ws)
    except Exception as e:
        log.warning(f"WebSocket closed on error: {e}")
        manager.disconnect(ws)


@app.get("/{full_path:path}")
async def spa_catch_all(request: Request, full_path: str):
    """Serve static files or fall back to index.html for SPA routing."""
    static_dir = os.path.realpath(os.path.join(os.path.dirname(__file__) or ".", "static"))
    file_path = os.path.realpath(os.path.join(static_dir, full_path))
    # Prevent path traversal: file must be inside static_dir
    if not file_path.startswith(static_dir + os.sep) and file_path != static_dir:
        return JSONResponse({"error": "not found"}, status_code=404)
    if full_path and os.path.isfile(file_path):
        return FileResponse(file_path)
    index_path = os.path.join(static_dir, "index.html")
    if os.path.isfile(index_path):
        return FileResponse(index_path, headers={"Cache-Control": "no-cache, no-store, must-revalidate"})
    return JSONResponse({"error": "not found"}, status_code=404)


def main():
    parser = argparse.ArgumentParser(description="Reaction time benchmark server")
    parser.add_argument("--host", default=os.environ.get("REACTION_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("REACTION_PORT", "8000")))
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level))

    ssl_args = {}
    cert = os.path.join(os.path.dirname(__file__) or ".", "cert.pem")
    key = os.path.join(os.path.dirname(__file__) or ".", "key.pem")
    if os.path.isfile(cert) and os.path.isfile(key):
        ssl_args = {"ssl_keyfile": key, "ssl_certfile": cert}
        log.info("HTTPS enabled (cert.pem + key.pem)")
    uvicorn.run(app, host=args.host, port=args.port, **ssl_args)


if __name__ == "__main__":
    main()
