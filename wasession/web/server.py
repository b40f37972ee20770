from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
import time
import uuid
from typing import Any, Optional, Protocol

from flask import Flask, Response, g, jsonify, request
from werkzeug.exceptions import HTTPException

from wasession import __version__
from wasession.core.errors import DisconnectFatal, WaSessionError
from wasession.core.events import PresentationMode, Token
from wasession.defaults.config import EXIT_FATAL
from wasession.infra.logger import configure_logging
from wasession.utils.phone import normalize_wa_id
from wasession.utils.settings import Settings, settings_from_env

from .runtime import BootstrapRuntime
from .state import SessionRecord

logger = logging.getLogger(__name__)


class SessionRuntimeLike(Protocol):
    def start(self, mode: PresentationMode, phone_number: Optional[str] = None) -> SessionRecord: ...

    def wait_for_token(self, record: SessionRecord, timeout: float | None = None) -> Token: ...

    def get_record(self, request_id: str) -> Optional[SessionRecord]: ...

    def stats(self) -> dict[str, Any]: ...


def _error(message: str, status: int):
    body = {"success": False, "error": message}
    request_id = getattr(g, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    return jsonify(body), status


def _token_response(token: Token):
    if token.mode is PresentationMode.QR_PNG:
        return Response(
            token.body,
            status=200,
            mimetype="image/png",
            headers={"Cache-Control": "no-store"},
        )
    if token.mode is PresentationMode.QR_DATA_URL:
        return jsonify({"success": True, "qr": token.body})
    return jsonify({"success": True, "code": token.body})


def create_app(
    *,
    testing: bool = False,
    runtime: SessionRuntimeLike | None = None,
    settings: Settings | None = None,
) -> Flask:
    app = Flask(__name__)
    app.config["TESTING"] = testing
    settings = settings or settings_from_env()
    session_runtime = runtime or BootstrapRuntime(settings)
    app.config["SESSION_RUNTIME"] = session_runtime
    app.config["SETTINGS"] = settings
    started_at = time.monotonic()

    @app.before_request
    def assign_request_id():
        g.request_id = uuid.uuid4().hex

    @app.after_request
    def tag_response(response: Response):
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")
        return response

    def run_bootstrap(mode: PresentationMode, phone_number: Optional[str] = None):
        try:
            record = session_runtime.start(mode, phone_number=phone_number)
        except WaSessionError as exc:
            return _error(str(exc), exc.http_status)
        g.request_id = record.request_id
        try:
            token = session_runtime.wait_for_token(record)
        except WaSessionError as exc:
            logger.warning("bootstrap ended before a token: %s", exc, extra={"request_id": record.request_id})
            return _error(str(exc), exc.http_status)
        return _token_response(token)

    @app.get("/qr")
    def qr():
        raw_format = request.args.get("format")
        mode = settings.qr_mode
        if raw_format:
            try:
                mode = PresentationMode.from_value(raw_format)
            except ValueError as exc:
                return _error(str(exc), 400)
            if not mode.is_qr:
                return _error("use /code for pairing codes", 400)
        return run_bootstrap(mode)

    @app.get("/code")
    def code():
        raw_number = request.args.get("number")
        phone_number = None
        if raw_number is not None and raw_number.strip():
            try:
                phone_number = normalize_wa_id(raw_number)
            except ValueError as exc:
                return _error(str(exc), 400)
        return run_bootstrap(PresentationMode.PAIRING_CODE, phone_number)

    @app.get("/sessions/<request_id>")
    def session_status(request_id: str):
        record = session_runtime.get_record(request_id)
        if record is None:
            return _error("unknown session", 404)
        return jsonify(record.to_dict())

    @app.get("/health")
    def health():
        return jsonify(
            {
                "status": "ok",
                "version": __version__,
                "uptime_s": round(time.monotonic() - started_at, 1),
                "runtime": session_runtime.stats(),
            }
        )

    @app.errorhandler(HTTPException)
    def http_error(exc: HTTPException):
        return _error(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def unexpected_error(exc: Exception):
        logger.exception("unhandled error: %s", exc, extra={"request_id": getattr(g, "request_id", None)})
        message = str(exc) if app.debug else "An unexpected error occurred"
        return _error(message, 500)

    return app


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the WhatsApp session bootstrap server.")
    parser.add_argument("--host")
    parser.add_argument("--port", type=int)
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args()


def _fatal_exit_handler(runtime_ref: list[BootstrapRuntime]):
    def _handle(exc: DisconnectFatal) -> None:
        logger.critical("unrecoverable disconnect, exiting for supervisor restart: %s", exc)

        def _terminate() -> None:
            if runtime_ref:
                runtime_ref[0].close()
            logging.shutdown()
            os._exit(EXIT_FATAL)

        # close() waits on the loop this handler runs on
        threading.Thread(target=_terminate, name="wasession-fatal-exit", daemon=True).start()

    return _handle


def _graceful_shutdown(signum: int, frame: Any) -> None:
    del frame
    logger.info("signal %s received, shutting down", signum)
    sys.exit(0)


def build_runtime(settings: Settings, **runtime_kwargs: Any) -> BootstrapRuntime:
    """Runtime whose fatal disconnects end the process when ``exit_on_fatal`` is set."""
    runtime_ref: list[BootstrapRuntime] = []
    on_fatal = _fatal_exit_handler(runtime_ref) if settings.exit_on_fatal else None
    runtime = BootstrapRuntime(settings, on_fatal=on_fatal, **runtime_kwargs)
    runtime_ref.append(runtime)
    return runtime


def main() -> None:
    args = _parse_args()
    settings = settings_from_env()
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    configure_logging("DEBUG" if args.debug else settings.log_level, json_output=settings.log_json)

    runtime = build_runtime(settings)
    runtime.arena.purge()
    signal.signal(signal.SIGTERM, _graceful_shutdown)

    app = create_app(runtime=runtime, settings=settings)
    logger.info("listening on http://%s:%s", settings.host, settings.port)
    try:
        app.run(host=settings.host, port=settings.port, debug=args.debug, use_reloader=False, threaded=True)
    except KeyboardInterrupt:
        pass
    finally:
        runtime.close()


if __name__ == "__main__":
    main()
