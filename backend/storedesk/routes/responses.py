# Overview: Shared JSON error responses for API routes.

from flask import current_app, jsonify


def server_error(log_message: str, exc: Exception, *, message: str = "Internal server error"):
    """Log with traceback and return a 500; raw detail only when EXPOSE_ERROR_DETAILS is on."""
    current_app.logger.exception(log_message)
    body = {"error": message}
    if current_app.config.get("EXPOSE_ERROR_DETAILS"):
        body["details"] = str(exc)
    return jsonify(body), 500


def int_arg(args, name: str, default: int | None = None) -> int | None:
    raw = args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer")
