import json
import math
import os
from datetime import datetime

import azure.functions as func
from bson import ObjectId


def cors_headers():
    return {
        "Access-Control-Allow-Origin": os.getenv("ALLOWED_ORIGIN", ""),
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def json_serial(obj):
    """JSON serializer for objects not serializable by default json code"""
    if isinstance(obj, datetime):
        iso = obj.isoformat()
        if obj.tzinfo is None:
            return iso + "Z"
        return iso
    if isinstance(obj, ObjectId):
        return str(obj)
    return str(obj)


def sanitize_for_json(obj):
    """Recursively replace NaN and Infinity with None in nested structures"""
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            return None
        return obj
    if isinstance(obj, dict):
        return {k: sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [sanitize_for_json(item) for item in obj]
    return obj


def respond(body=None, status=200):
    return func.HttpResponse(
        json.dumps(sanitize_for_json(body), default=json_serial) if body is not None else "null",
        status_code=status,
        mimetype="application/json",
        headers=cors_headers(),
    )


def error_response(message: str, status: int):
    return respond({"error": message}, status=status)


def options_response():
    return func.HttpResponse("", status_code=204, headers=cors_headers())
