#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Mini web viewer for resolved short links (Flask)

- Reads the result log (data.txt) written by shortlink_scan.py
- Reloads when the file's mtime changes
- UI: search + kind filter (redirect / 404) + pagination
- /api/entries, /api/summary return JSON

Duplicate tokens from repeated runs are collapsed, last line wins for display.

Run:
  python web_viewer.py --data ./data.txt --host 127.0.0.1 --port 8080
"""

from __future__ import annotations

import argparse
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from flask import Flask, jsonify, render_template_string, request

from shortlink_store import ResolvedEntry, StoreLoadError, iter_entries

KINDS = ("all", "redirect", "not_found")

INDEX_HTML = """<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <title>Resolved short links</title>
  <style>
    body { font-family: sans-serif; margin: 2em; }
    td { padding: 2px 8px; }
    .nf { color: #999; }
  </style>
</head>
<body>
  <h1>Resolved short links</h1>
  <p id="summary"></p>
  <input id="q" placeholder="search token or target">
  <select id="kind">
    <option value="all">all</option>
    <option value="redirect">redirect</option>
    <option value="not_found">404</option>
  </select>
  <button onclick="load(1)">Search</button>
  <table id="rows"></table>
  <button onclick="load(page - 1)">prev</button>
  <button onclick="load(page + 1)">next</button>
  <script>
    let page = 1;
    function cell(tr, text) {
      const td = document.createElement("td");
      td.textContent = text;
      tr.appendChild(td);
      return td;
    }
    function row(e) {
      const tr = document.createElement("tr");
      cell(tr, e.token);
      if (e.target) {
        const td = cell(tr, "");
        const a = document.createElement("a");
        if (/^https?:/i.test(e.target)) a.href = e.target;
        a.textContent = e.target;
        td.appendChild(a);
      } else {
        tr.className = "nf";
        cell(tr, "404");
      }
      return tr;
    }
    async function load(p) {
      if (p < 1) return;
      const q = encodeURIComponent(document.getElementById("q").value);
      const kind = document.getElementById("kind").value;
      const r = await fetch(`/api/entries?q=${q}&kind=${kind}&page=${p}`);
      const data = await r.json();
      page = data.page;
      const rows = document.getElementById("rows");
      rows.replaceChildren(...data.items.map(row));
      const s = await (await fetch("/api/summary")).json();
      document.getElementById("summary").textContent =
        `${s.unique} unique tokens (${s.redirects} redirects, ${s.not_found} 404s), ${s.lines} lines, updated ${s.updated_at}`;
    }
    load(1);
  </script>
</body>
</html>
"""


# ----------------------------
# Data cache (reload on change)
# ----------------------------


@dataclass
class Cache:
    data_path: Path
    mtime: float = 0.0
    lines: int = 0
    entries: List[ResolvedEntry] = field(default_factory=list)

    def refresh_if_needed(self) -> None:
        if not self.data_path.exists():
            self.entries = []
            self.lines = 0
            self.mtime = 0.0
            return

        new_mtime = self.data_path.stat().st_mtime
        if new_mtime <= self.mtime and self.entries:
            return

        by_token: Dict[str, ResolvedEntry] = {}
        lines = 0
        for e in iter_entries(self.data_path):
            by_token[e.token] = e
            lines += 1
        self.entries = sorted(by_token.values(), key=lambda e: (len(e.token), e.token))
        self.lines = lines
        self.mtime = new_mtime


def _int_arg(name: str, default: int, lo: int, hi: int) -> int:
    try:
        v = int(request.args.get(name) or default)
    except ValueError:
        v = default
    return min(max(v, lo), hi)


# ----------------------------
# App
# ----------------------------


def create_app(data_path: Path) -> Flask:
    app = Flask(__name__)
    cache = Cache(data_path=Path(data_path))
    app.config["CACHE"] = cache

    @app.errorhandler(StoreLoadError)
    def bad_log(e: StoreLoadError):
        return jsonify({"ok": False, "error": str(e)}), 500

    @app.get("/")
    def index():
        return render_template_string(INDEX_HTML)

    @app.get("/api/entries")
    def api_entries():
        cache.refresh_if_needed()

        q = (request.args.get("q") or "").strip().lower()
        kind = request.args.get("kind") or "all"
        if kind not in KINDS:
            return jsonify({"ok": False, "error": f"kind must be one of {', '.join(KINDS)}"}), 400
        page = _int_arg("page", 1, 1, 10 ** 9)
        per_page = _int_arg("per_page", 200, 1, 5000)

        items = cache.entries
        if kind == "redirect":
            items = [e for e in items if e.is_redirect]
        elif kind == "not_found":
            items = [e for e in items if not e.is_redirect]
        if q:
            items = [e for e in items if q in e.token.lower() or q in e.target.lower()]

        total = len(items)
        start = (page - 1) * per_page
        page_items = items[start:start + per_page]

        return jsonify(
            {
                "total": total,
                "page": page,
                "per_page": per_page,
                "items": [{"token": e.token, "target": e.target} for e in page_items],
            }
        )

    @app.get("/api/summary")
    def api_summary():
        cache.refresh_if_needed()
        redirects = sum(1 for e in cache.entries if e.is_redirect)
        updated_at = (
            time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(cache.mtime))
            if cache.mtime
            else None
        )
        return jsonify(
            {
                "data_path": str(cache.data_path),
                "lines": cache.lines,
                "unique": len(cache.entries),
                "redirects": redirects,
                "not_found": len(cache.entries) - redirects,
                "updated_at": updated_at,
            }
        )

    return app


# ----------------------------
# Main
# ----------------------------


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser("web_viewer.py", description="Mini web UI for resolved short links.")
    p.add_argument("--data", default="data.txt", help="Result log written by shortlink_scan.py")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8080)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    app = create_app(Path(args.data))

    print(f"Serving on http://{args.host}:{args.port}")
    print(f"Reading from: {args.data}")

    app.run(host=args.host, port=args.port, debug=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
