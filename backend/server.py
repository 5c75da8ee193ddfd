import os
import sys
import time
import threading

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, Response, g, jsonify, request
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from normalizer import normalize_input
from requirements import RequirementConfigError
from requirement_store import RequirementStore
from data_loader import load_data
from evaluator import evaluate
from filters import filter_courses, prefix_label, prefix_options, quarter_options
from selection_store import SelectionStore, export_selection_codes, import_selection_codes, resolve_codes
from share import build_share_token, parse_share_token

load_dotenv()

app = Flask(__name__)

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)


def _resolve_path(env_name: str, default_rel: str) -> str:
    raw = os.environ.get(env_name)
    if not raw:
        return os.path.join(PROJECT_ROOT, default_rel)
    if not os.path.isabs(raw):
        return os.path.join(PROJECT_ROOT, raw)
    return raw


CATALOG_PATH = _resolve_path("CATALOG_PATH", os.path.join("data", "courses.json"))
REQUIREMENTS_PATH = _resolve_path("REQUIREMENTS_PATH", os.path.join("data", "graduation_requirements.json"))
SELECTION_PATH = _resolve_path("SELECTION_PATH", os.path.join("data", "selected_courses.json"))
_data_lock = threading.Lock()


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)


# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _data = load_data(CATALOG_PATH)
    print(f"[OK] Loaded {len(_data['catalog_codes'])} courses from {CATALOG_PATH}")
except FileNotFoundError:
    print(f"[FATAL] Catalog file not found: {CATALOG_PATH}", file=sys.stderr)
    sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load catalog: {exc}", file=sys.stderr)
    sys.exit(1)

_requirements = RequirementStore()
_requirements.load(REQUIREMENTS_PATH)
_selection = SelectionStore(SELECTION_PATH)


def reload_catalog() -> bool:
    """Swap in a freshly loaded catalog; keep the previous one on failure."""
    global _data
    with _data_lock:
        try:
            new_data = load_data(CATALOG_PATH)
        except Exception as exc:
            print(f"[WARN] Catalog reload failed; keeping previous catalog: {exc}", file=sys.stderr)
            return False
        _data = new_data
    print(f"[OK] Reloaded {len(new_data['catalog_codes'])} courses from {CATALOG_PATH}")
    return True


def _error(error_code: str, message: str, status: int):
    return jsonify({
        "mode": "error",
        "error": {"error_code": error_code, "message": message},
    }), status


def _object_body():
    """JSON body as a dict. A missing body reads as {}; a non-object body gives None."""
    body = request.get_json(force=True, silent=True)
    if body is None:
        return {}
    return body if isinstance(body, dict) else None


def _coerce_course_list(raw_value) -> str:
    if isinstance(raw_value, list):
        return "\n".join(str(v) for v in raw_value if v is not None)
    if isinstance(raw_value, str):
        return raw_value
    return ""


# -- Security headers ------------------------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# ── 500 handler ────────────────────────────────────────────────────────────────
@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    print(f"[WARN] Unhandled error: {e!r}", file=sys.stderr)
    return _error("SERVER_ERROR", "An unexpected server error occurred.", 500)


# ── Routes ─────────────────────────────────────────────────────────────────────
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": "1.0.0",
        "courses": len(_data["catalog_codes"]),
        "requirements_source": _requirements.source,
    })


@app.route("/api/courses", methods=["GET"])
def get_courses():
    df = filter_courses(
        _data["courses_df"],
        query=request.args.get("q", ""),
        prefix=request.args.get("prefix", ""),
        quarter=request.args.get("quarter", ""),
    )
    df = df.assign(prefixLabel=df["prefix"].apply(prefix_label))
    df = df.astype(object).where(df.notna(), None)
    return jsonify({
        "courses": df.to_dict(orient="records"),
        "prefixes": prefix_options(_data["courses_df"]),
        "quarters": quarter_options(),
    })


@app.route("/api/requirements", methods=["GET"])
def get_requirements():
    return jsonify({"source": _requirements.source, "requirements": _requirements.get()})


@app.route("/api/requirements", methods=["PUT"])
def put_requirements():
    body = request.get_json(force=True, silent=True)
    if body is None:
        return _error("INVALID_INPUT", "Request body must be valid JSON.", 400)
    try:
        parsed = _requirements.replace(body, source="imported")
    except RequirementConfigError as exc:
        return _error("INVALID_REQUIREMENTS", str(exc), 400)
    return jsonify({
        "source": _requirements.source,
        "requirements": _requirements.get(),
        "warnings": list(parsed.warnings),
    })


@app.route("/api/requirements/reset", methods=["POST"])
def reset_requirements():
    _requirements.reset()
    return jsonify({"source": _requirements.source, "requirements": _requirements.get()})


@app.route("/api/requirements/export", methods=["GET"])
def export_requirements():
    return Response(
        _requirements.export_json(),
        mimetype="application/json",
        headers={"Content-Disposition": "attachment; filename=graduation_requirements.json"},
    )


@app.route("/api/evaluate", methods=["POST"])
def evaluate_endpoint():
    """
    Evaluate selected course codes against the active (or supplied) requirements.

    Body: {"selected_codes": [...] | "A\\nB", "requirements": {...}?}
    """
    body = request.get_json(force=True, silent=True)
    if body is None or not isinstance(body, dict):
        return _error("INVALID_INPUT", "Request body must be a JSON object.", 400)

    normalized = normalize_input(_coerce_course_list(body.get("selected_codes")), _data["catalog_codes"])
    selected, missing = resolve_codes(normalized["valid"], _data["courses_by_code"])

    if "requirements" in body:
        config = body["requirements"]
    else:
        config = _requirements.parsed()

    report = evaluate(selected, config)
    return jsonify({
        "mode": "evaluation",
        "report": report,
        "selected_codes": [c.code for c in selected],
        "invalid": normalized["invalid"],
        "not_in_catalog": normalized["not_in_catalog"] + missing,
    })


@app.route("/api/selection", methods=["GET"])
def get_selection():
    selected, missing = resolve_codes(_selection.load(), _data["courses_by_code"])
    return jsonify({"courses": [c.to_dict() for c in selected], "not_in_catalog": missing})


@app.route("/api/selection", methods=["PUT"])
def put_selection():
    body = _object_body()
    if body is None:
        return _error("INVALID_INPUT", "Request body must be a JSON object.", 400)
    normalized = normalize_input(_coerce_course_list(body.get("selected_codes")), _data["catalog_codes"])
    if not _selection.save(normalized["valid"]):
        return _error("SAVE_FAILED", "Selected courses could not be saved.", 500)
    return jsonify({"selected_codes": normalized["valid"], "not_in_catalog": normalized["not_in_catalog"]})


@app.route("/api/selection/export", methods=["GET"])
def export_selection():
    selected, _missing = resolve_codes(_selection.load(), _data["courses_by_code"])
    return Response(export_selection_codes(selected), mimetype="text/plain")


@app.route("/api/selection/import", methods=["POST"])
def import_selection():
    body = _object_body()
    if body is None:
        return _error("INVALID_INPUT", "Request body must be a JSON object.", 400)
    courses = import_selection_codes(str(body.get("text", "") or ""), _data["courses_df"])
    return jsonify({"courses": [c.to_dict() for c in courses]})


@app.route("/api/share", methods=["POST"])
def create_share():
    body = _object_body()
    if body is None:
        return _error("INVALID_INPUT", "Request body must be a JSON object.", 400)
    codes = [c for c in _coerce_course_list(body.get("selected_codes")).splitlines() if c.strip()]
    token = build_share_token(codes, str(body.get("title", "") or ""), str(body.get("comment", "") or ""))
    return jsonify({"token": token})


@app.route("/api/share/<token>", methods=["GET"])
def read_share(token):
    shared = parse_share_token(token)
    shared["courses"] = [{"code": code, "label": prefix_label(code)} for code in shared["codes"]]
    return jsonify(shared)


@app.route("/api/catalog/reload", methods=["POST"])
def reload_catalog_endpoint():
    if not reload_catalog():
        return _error("RELOAD_FAILED", "Catalog reload failed; previous catalog kept.", 500)
    return jsonify({"courses": len(_data["catalog_codes"])})


# -- API catch-all (404 for unknown /api/* routes) -------------------
@app.route("/api/<path:rest>", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
def api_catch_all(rest):
    return jsonify({"error": f"/api/{rest} not found"}), 404


app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
