#!/usr/bin/env python3
"""Local server for rendered year views, with a JSON API for layouts and preferences."""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import json
import logging
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from event_store import SqliteEventSource
from preferences import PreferenceStore
from row_topology import UnknownTopologyError
from year_layout import clamp_year
from year_view import build_layout

logger = logging.getLogger(__name__)


class YearViewHandler(SimpleHTTPRequestHandler):
    def __init__(self, *args, directory: Path, db_path: Path, prefs_path: Path, **kwargs):
        self.db_path = db_path
        self.prefs_path = prefs_path
        super().__init__(*args, directory=str(directory), **kwargs)

    def log_message(self, format: str, *args) -> None:
        logger.debug(format % args)

    def send_json(self, status: int, payload: dict | list) -> None:
        body = json.dumps(payload, indent=2).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path == "/api/calendars":
            self.handle_calendars()
            return
        if parsed.path == "/api/layout":
            self.handle_layout(parsed.query)
            return
        if parsed.path == "/api/preferences":
            self.handle_preferences()
            return
        super().do_GET()

    def do_POST(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path == "/api/preferences":
            self.handle_preferences_update()
            return
        self.send_error(404, "Unknown endpoint")

    def handle_calendars(self) -> None:
        calendars = asyncio.run(SqliteEventSource(self.db_path).fetch_calendars())
        self.send_json(200, {"calendars": calendars})

    def handle_layout(self, query: str) -> None:
        params = parse_qs(query)
        year = clamp_year(params.get("year", [""])[0], fallback=dt.date.today().year)
        mode = params.get("mode", [None])[0]
        try:
            result, _, _ = asyncio.run(build_layout(self.db_path, self.prefs_path, year, mode))
        except UnknownTopologyError as e:
            self.send_json(400, {"error": str(e)})
            return
        self.send_json(200, result.to_dict())

    def handle_preferences(self) -> None:
        prefs = asyncio.run(PreferenceStore(self.prefs_path).load_all())
        self.send_json(200, prefs)

    def handle_preferences_update(self) -> None:
        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length) if length else b""
        try:
            payload = json.loads(raw.decode("utf-8")) if raw else {}
        except ValueError:
            self.send_json(400, {"error": "Invalid JSON"})
            return
        if not isinstance(payload, dict):
            self.send_json(400, {"error": "Expected a JSON object"})
            return
        prefs = asyncio.run(PreferenceStore(self.prefs_path).update(payload))
        if prefs is None:
            self.send_json(500, {"error": "Could not save preferences"})
            return
        self.send_json(200, {"ok": True, "preferences": prefs})


def make_server(host: str, port: int, db_path: Path, prefs_path: Path, html_dir: Path) -> ThreadingHTTPServer:
    handler = lambda *args, **kwargs: YearViewHandler(
        *args,
        directory=html_dir,
        db_path=db_path,
        prefs_path=prefs_path,
        **kwargs,
    )
    return ThreadingHTTPServer((host, port), handler)


def run_server(host: str, port: int, db_path: Path, prefs_path: Path, html_dir: Path) -> None:
    server = make_server(host, port, db_path, prefs_path, html_dir)
    print(f"Year view running at http://{host}:{port}")
    server.serve_forever()


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve rendered year views and the layout API.")
    parser.add_argument("--db", type=Path, default=Path("calendar.db"))
    parser.add_argument("--prefs", type=Path, default=Path("preferences.json"))
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8787)
    parser.add_argument("--html-dir", type=Path, default=Path("output"))
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.db.exists():
        raise SystemExit(f"Event database not found: {args.db}")
    if not args.html_dir.exists():
        raise SystemExit(f"HTML directory not found: {args.html_dir} (run year_view.py render first)")

    run_server(args.host, args.port, args.db, args.prefs, args.html_dir)


if __name__ == "__main__":
    main()
