# Overview: JSON envelope helpers shared by every API route.

from flask import jsonify, request

from .validation import ValidationError


def ok(data=None, message: str = "", status: int = 200):
    return jsonify({"success": True, "data": data, "message": message}), status


def fail(message: str, status: int, fields: dict | None = None):
    body = {"success": False, "data": None, "message": message}
    if fields:
        body["errors"] = fields
    return jsonify(body), status


def get_json_body() -> dict:
    """Request JSON object, or {} when the body is empty."""
    data = request.get_json(silent=True)
    if data is None:
        if request.get_data():
            raise ValidationError("Invalid JSON payload")
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def query_bool(name: str):
    """Optional boolean query parameter: "true"/"false" or None."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    value = raw.strip().lower()
    if value not in ("true", "false"):
        raise ValidationError(f"{name} must be true or false", {name: "must be true or false"})
    return value == "true"


def query_int(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", {name: "must be an integer"})
