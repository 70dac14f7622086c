import os
import logging
from flask import Flask, Response, request, jsonify, send_from_directory
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import requests

from failover import HostPool, UpstreamUnavailable
from sleekflow import fetch_records, post_contact_list

# ----------------------
# Configuration
# ----------------------
PORT = int(os.getenv("PORT", "3000"))
RATE_LIMIT = os.getenv("RATE_LIMIT", "60 per minute")
UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", "15"))
STATIC_ROOT = os.getenv(
    "STATIC_ROOT", os.path.join(os.path.dirname(os.path.abspath(__file__)), "public")
)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

BASE_URLS = (
    "https://api.sleekflow.io",
    "https://sleekflow-core-app-eus-production.azurewebsites.net",
    "https://sleekflow-core-app-seas-production.azurewebsites.net",
    "https://sleekflow-core-app-weu-production.azurewebsites.net",
    "https://sleekflow-core-app-uaen-production.azurewebsites.net",
)

CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = ["Content-Type"]

# Logging
logging.basicConfig(level=getattr(logging, LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger("sleekflow-relay")


# ----------------------
# Helpers
# ----------------------
def json_body() -> dict:
    """Parsed JSON object from the request; anything else counts as empty."""
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def is_present(value) -> bool:
    return isinstance(value, str) and value != ""


def client_key_func():
    """Rate limit by apiKey if present, otherwise by IP."""
    api_key = json_body().get("apiKey")
    if is_present(api_key):
        return api_key
    return get_remote_address()


def error(message: str, status: int):
    return jsonify({"error": message}), status


def passthrough(upstream) -> Response:
    return Response(upstream.body or b"{}", status=upstream.status, mimetype="application/json")


# ----------------------
# App Setup
# ----------------------
def create_app(base_urls=None, session_factory=None, static_root=None, rate_limit=None, timeout=None):
    app = Flask(__name__, static_folder=None)

    pool = HostPool(base_urls or BASE_URLS)
    session_factory = session_factory or requests.Session
    static_root = static_root or STATIC_ROOT
    if not os.path.isdir(static_root):
        logger.warning("Static root %s does not exist; GET requests will return 404", static_root)
    rate_limit = rate_limit or RATE_LIMIT
    timeout = UPSTREAM_TIMEOUT if timeout is None else timeout

    app.extensions["host_pool"] = pool

    @app.before_request
    def preflight():
        if request.method == "OPTIONS":
            return Response(status=204)

    @app.after_request
    def cors_headers(resp):
        resp.headers.setdefault("Access-Control-Allow-Origin", "*")
        resp.headers["Access-Control-Allow-Methods"] = ",".join(CORS_METHODS)
        resp.headers["Access-Control-Allow-Headers"] = ",".join(CORS_HEADERS)
        return resp

    # Registered after cors_headers so it runs first; cors_headers keeps its origin
    # header and replaces the allow lists with the fixed ones.
    CORS(app, origins="*", methods=CORS_METHODS, allow_headers=CORS_HEADERS, send_wildcard=True)

    limiter = Limiter(
        key_func=client_key_func,
        app=app,
        storage_uri="memory://",
    )

    # ----------------------
    # Endpoints
    # ----------------------
    @app.route("/api/records", methods=["POST"])
    @limiter.limit(rate_limit)
    def records_proxy():
        data = json_body()
        api_key = data.get("apiKey")
        object_key = data.get("objectKey")
        continuation_token = data.get("continuationToken") or ""
        if not is_present(api_key) or not is_present(object_key):
            return error("apiKey and objectKey are required", 400)
        if not isinstance(continuation_token, str):
            return error("continuationToken must be a string", 400)

        try:
            with session_factory() as session:
                upstream = fetch_records(
                    pool, session, api_key, object_key, continuation_token, timeout=timeout
                )
        except UpstreamUnavailable as e:
            logger.error("Record fetch for %s failed on every base URL", object_key)
            return jsonify(e.to_dict()), 502
        except Exception:
            logger.exception("Record fetch relay failed")
            return error("Internal server error", 500)
        return passthrough(upstream)

    @app.route("/api/contact/list", methods=["POST"])
    @limiter.limit(rate_limit)
    def contact_list_proxy():
        data = json_body()
        api_key = data.get("apiKey")
        group_list_name = data.get("groupListName")
        user_profile_ids = data.get("userProfileIds")
        if (
            not is_present(api_key)
            or not is_present(group_list_name)
            or not isinstance(user_profile_ids, list)
        ):
            return error("apiKey, groupListName, and userProfileIds are required", 400)

        try:
            with session_factory() as session:
                upstream = post_contact_list(
                    pool, session, api_key, group_list_name, user_profile_ids, timeout=timeout
                )
        except UpstreamUnavailable as e:
            logger.error("Contact list %r failed on every base URL", group_list_name)
            return jsonify(e.to_dict()), 502
        except Exception:
            logger.exception("Contact list relay failed")
            return error("Internal server error", 500)
        return passthrough(upstream)

    @app.route("/", methods=["GET"])
    def index():
        return send_from_directory(static_root, "index.html")

    @app.route("/<path:path>", methods=["GET"])
    def static_files(path):
        return send_from_directory(static_root, path)

    @app.errorhandler(404)
    @app.errorhandler(405)
    def not_found(_e):
        return error("Not found", 404)

    @app.errorhandler(429)
    def rate_limited(_e):
        return error("Rate limit exceeded", 429)

    return app


app = create_app()

if __name__ == "__main__":
    logger.info("Server listening on http://localhost:%d", PORT)
    app.run(host="0.0.0.0", port=PORT, threaded=True)
