#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import time
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

_VALID_PREDICTION = {
    "risk": 42,
    "confidence": 80,
    "impact": "medium",
    "summary": "Service layer changed",
    "reason": "Moderate blast radius across request handlers",
    "suggested_tests": ["tests/test_service.py"],
}


def _model_text(mode: str) -> str:
    if mode == "valid":
        return json.dumps(_VALID_PREDICTION)
    if mode == "prose":
        return "Sure! Here is the analysis:\n```json\n" + json.dumps(_VALID_PREDICTION) + "\n```"
    if mode == "out-of-range":
        return json.dumps({**_VALID_PREDICTION, "risk": 150, "impact": "critical"})
    return "I am not able to answer that."


class MockOllamaHandler(BaseHTTPRequestHandler):
    server_version = "MockOllama/1.0"
    mode = "valid"
    delay_seconds = 0.0

    def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
        if self.path == "/healthz":
            self._write_json(HTTPStatus.OK, {"status": "ok"})
            return
        self._write_json(HTTPStatus.NOT_FOUND, {"detail": "not found"})

    def do_POST(self) -> None:  # noqa: N802 - stdlib handler signature
        if self.path != "/api/generate":
            self._write_json(HTTPStatus.NOT_FOUND, {"detail": "not found"})
            return

        length = int(self.headers.get("Content-Length", "0") or 0)
        try:
            body = json.loads(self.rfile.read(length) or b"{}")
        except ValueError:
            self._write_json(HTTPStatus.BAD_REQUEST, {"error": "invalid json body"})
            return

        if self.delay_seconds > 0:
            time.sleep(self.delay_seconds)

        self._write_json(
            HTTPStatus.OK,
            {
                "model": body.get("model", "mock"),
                "response": _model_text(self.mode),
                "done": True,
            },
        )

    def log_message(self, _: str, *args: object) -> None:
        if args:
            print("mock-ollama:", *args)

    def _write_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
        raw = json.dumps(payload).encode("utf-8")
        self.send_response(status.value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock Ollama /api/generate endpoint.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=11434)
    parser.add_argument("--mode", choices=["valid", "prose", "out-of-range", "garbage"], default="valid")
    parser.add_argument("--delay-seconds", type=float, default=0.0)
    args = parser.parse_args()

    MockOllamaHandler.mode = args.mode
    MockOllamaHandler.delay_seconds = args.delay_seconds
    server = ThreadingHTTPServer((args.host, args.port), MockOllamaHandler)
    print(f"mock-ollama listening on http://{args.host}:{args.port} mode={args.mode}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
