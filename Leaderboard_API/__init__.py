import logging

import azure.functions as func

from Leaderboard_Scorer import build_engine, paginate, rank_change
from Leaderboard_Scorer.constants import METRICS_KEY_FOR_TYPE, parse_period, parse_type
from utils.http import error_response, options_response, respond

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
DEFAULT_PERIOD = "monthly"


def _get_engine():
    return build_engine()


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info("[LeaderboardAPI] %s %s", req.method, req.url)

    if req.method == "OPTIONS":
        return options_response()

    # Route format: "leaderboard/{*route}"
    subpath = (req.route_params.get("route") or "").strip("/")
    parts = [p for p in subpath.split("/") if p]

    try:
        if not parts or parts == ["health"]:
            return respond({"status": "ok", "service": "leaderboard-api"})

        if parts[0] == "admin":
            if req.method != "POST":
                return error_response("Method not supported", 405)
            if parts[1:] == ["update"]:
                return trigger_update(req)
            if parts[1:] == ["reset"]:
                return reset_bucket(req)
            return error_response("Not Found", 404)

        if req.method != "GET":
            return error_response("Method not supported", 405)
        if len(parts) == 1:
            return get_leaderboard(req, parts[0])
        if len(parts) == 3 and parts[1] == "position":
            return get_position(req, parts[0], parts[2])

        return error_response("Not Found", 404)

    except ValueError as e:
        return error_response(str(e), 400)
    except Exception as e:
        logging.error("[LeaderboardAPI] Error handling %s: %s", subpath, e, exc_info=True)
        return error_response("Internal Server Error", 500)


def _int_param(req, name: str, default: int, minimum: int = 1, maximum: int | None = None) -> int:
    raw = req.params.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"'{name}' must be an integer") from None
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def _json_body(req) -> dict:
    try:
        body = req.get_json()
    except ValueError:
        body = None
    return body if isinstance(body, dict) else {}


def build_entry(row: dict, user: dict | None, metrics_key: str) -> dict:
    user = user or {}
    rank = row.get("rank")
    previous = row.get("previousRank")
    return {
        "id": str(row["userId"]),
        "name": user.get("name"),
        "businessName": user.get("businessName"),
        "rank": rank,
        "score": row.get("totalScore", 0),
        "previousRank": previous,
        "change": rank_change(rank, previous),
        "additionalInfo": row.get(metrics_key) or {},
    }


def get_leaderboard(req, type_param: str):
    leaderboard_type = parse_type(type_param)
    period = parse_period(req.params.get("period") or DEFAULT_PERIOD)
    page = _int_param(req, "page", 1)
    limit = _int_param(req, "limit", DEFAULT_PAGE_SIZE, maximum=MAX_PAGE_SIZE)

    engine = _get_engine()
    rows = engine.get_leaderboard(leaderboard_type, period, limit=None)
    result = paginate(rows, page, limit)

    users = engine.repository.find_users([str(r["userId"]) for r in result["entries"]])
    metrics_key = METRICS_KEY_FOR_TYPE[leaderboard_type]
    result["entries"] = [build_entry(r, users.get(str(r["userId"])), metrics_key) for r in result["entries"]]
    result["leaderboardType"] = leaderboard_type.value
    result["period"] = period.value
    return respond(result)


def get_position(req, type_param: str, user_id: str):
    leaderboard_type = parse_type(type_param)
    period = parse_period(req.params.get("period") or DEFAULT_PERIOD)
    position = _get_engine().get_participant_position(leaderboard_type, period, user_id)
    # Not ranked in this window -> null body
    return respond(position)


def trigger_update(req):
    body = _json_body(req)
    engine = _get_engine()

    if not body.get("type") and not body.get("period"):
        outcome = engine.update_all_leaderboards()
        return respond({
            "updated": [f"{t}/{p}" for (t, p), ok in outcome.items() if ok],
            "failed": [f"{t}/{p}" for (t, p), ok in outcome.items() if not ok],
        })

    leaderboard_type = parse_type(body.get("type"))
    period = parse_period(body.get("period"))
    ranked = engine.update_leaderboard(leaderboard_type, period)
    return respond({
        "updated": [f"{leaderboard_type.value}/{period.value}"],
        "failed": [],
        "ranked": len(ranked),
    })


def reset_bucket(req):
    body = _json_body(req)
    leaderboard_type = parse_type(body.get("type"))
    period = parse_period(body.get("period"))
    modified = _get_engine().reset_leaderboard(leaderboard_type, period)
    return respond({"leaderboardType": leaderboard_type.value, "period": period.value, "deactivated": modified})
