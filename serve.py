"""Local launcher for the floor summary API."""

from __future__ import annotations

import os
from contextlib import suppress

from dotenv import load_dotenv
from werkzeug.serving import make_server

from app import create_app


def _server_address() -> tuple[str, int]:
    host = os.environ.get("FLOOR_RANKING_HOST") or "127.0.0.1"
    port = int(os.environ.get("FLOOR_RANKING_PORT") or 5000)
    return host, port


def build_server():
    load_dotenv()

    app = create_app()
    host, port = _server_address()
    server = make_server(host, port, app, threaded=True)
    app.logger.info("Serving floor summary on http://%s:%s", host, port)
    return server


def run_server() -> None:
    server = build_server()
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        with suppress(Exception):
            server.server_close()


if __name__ == "__main__":
    run_server()
