"""
Convocate - Main Flask Application
Entry point for the web server and API routes.
"""

import logging
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, request, g
from flask_cors import CORS

from .config import AppConfig, ConfigManager, get_config_manager
from .conversation import ConversationEngine, ChatRequest
from .errors import ConvocateError
from .models.runtime import OllamaRuntime, ModelError, ModelQuotaError
from .pipeline import UploadPipeline, UploadedFile
from .store.kv import KeyValueStore, InMemoryStore
from .store.ledger import QuotaLedger
from .store.results import ResultCache, TicketStatus
from .utils.identity import get_client_id, CLIENT_COOKIE, COOKIE_MAX_AGE
from .utils.memory import MemoryMonitor

logger = logging.getLogger(__name__)

QUOTA_ERROR_BODY = {
    "error": "Service temporarily unavailable due to usage limits. Please try again later.",
    "errorType": "quota_exceeded",
    "redirectTo": "/out-of-credits"
}

# Headroom for multipart framing on top of the per-file ceiling
UPLOAD_OVERHEAD_BYTES = 1024 * 1024


def create_app(
    config_path: Optional[str] = None,
    config: Optional[AppConfig] = None,
    runtime: Optional[OllamaRuntime] = None,
    store: Optional[KeyValueStore] = None
) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config_path: Optional path to the directory holding config/default.yaml.
        config: Optional ready-made configuration (skips YAML loading).
        runtime: Optional model runtime (defaults to Ollama from config).
        store: Optional shared-state store (defaults to in-memory).

    Returns:
        Configured Flask application.
    """
    if config is None:
        base_path = Path(config_path) if config_path else Path(__file__).parent.parent
        manager = ConfigManager(base_path) if config_path else get_config_manager(base_path)
        config = manager.load()

    app = Flask(__name__)
    CORS(app, supports_credentials=True)

    runtime = runtime or OllamaRuntime(config.ollama)
    store = store if store is not None else InMemoryStore()
    ledger = QuotaLedger(
        store,
        max_personas=config.upload.max_personas_per_client,
        max_messages=config.chat.max_messages_per_client
    )
    results = ResultCache(store, ttl_seconds=config.scoring.result_ttl_seconds)

    app.config["MAX_CONTENT_LENGTH"] = config.upload.max_files * config.upload.max_file_bytes + UPLOAD_OVERHEAD_BYTES
    app.config["CONVOCATE_CONFIG"] = config
    app.config["CONVOCATE_RUNTIME"] = runtime
    app.config["CONVOCATE_STORE"] = store
    app.config["CONVOCATE_LEDGER"] = ledger
    app.config["CONVOCATE_RESULTS"] = results
    app.config["CONVOCATE_PIPELINE"] = UploadPipeline(config, runtime, ledger)
    app.config["CONVOCATE_ENGINE"] = ConversationEngine(config, runtime, ledger, results, store)
    app.config["CONVOCATE_MONITOR"] = MemoryMonitor(store=store)

    register_routes(app)

    return app


def error_response(error: Exception):
    """Translate a service error into its JSON response."""
    if isinstance(error, ModelQuotaError):
        return jsonify(QUOTA_ERROR_BODY), 503
    if isinstance(error, ConvocateError):
        return jsonify({"error": error.message}), error.status_code
    return jsonify({"error": str(error) or "Internal Server Error"}), 500


def register_routes(app: Flask):
    """Register all application routes."""

    def client_id() -> str:
        identity, is_new = get_client_id(request)
        if is_new:
            g.new_client_id = identity
        return identity

    @app.after_request
    def remember_client(response):
        new_id = g.pop("new_client_id", None)
        if new_id:
            response.set_cookie(CLIENT_COOKIE, new_id, max_age=COOKIE_MAX_AGE, httponly=True, samesite="Lax")
        return response

    # =========================================================================
    # Upload API
    # =========================================================================

    @app.route("/api/upload", methods=["POST"])
    def upload():
        """Create personas from uploaded chat exports."""
        pipeline = app.config["CONVOCATE_PIPELINE"]
        identity = client_id()

        files = [
            UploadedFile(filename=f.filename or "", data=f.read())
            for f in request.files.getlist("files")
        ]

        try:
            result = pipeline.run(identity, files)
            logger.info("Upload created %d personas (process memory: %d MB)",
                        len(result.personas), app.config["CONVOCATE_MONITOR"].get_memory_mb())
            return jsonify(result.to_dict())
        except (ConvocateError, ModelQuotaError) as e:
            return error_response(e)
        except Exception as e:
            logger.exception("Upload failed")
            return error_response(e)

    # =========================================================================
    # Chat API
    # =========================================================================

    @app.route("/api/chat", methods=["POST"])
    def chat():
        """Run one practice turn against a persona."""
        config = app.config["CONVOCATE_CONFIG"]
        engine = app.config["CONVOCATE_ENGINE"]
        identity = client_id()

        try:
            ledger = app.config["CONVOCATE_LEDGER"]
            decision = ledger.check_messages(identity)
            if not decision.allowed:
                return jsonify({"error": decision.reason}), 429

            chat_request = ChatRequest.from_json(request.get_json(silent=True), config.chat.max_message_length)
            result = engine.run_turn(identity, chat_request)
            return jsonify(result.to_dict())
        except (ConvocateError, ModelQuotaError) as e:
            return error_response(e)
        except ModelError:
            return jsonify({"error": "Unable to generate response. Please try again."}), 500
        except Exception as e:
            logger.exception("Chat turn failed")
            return error_response(e)

    # =========================================================================
    # Deferred Scoring API
    # =========================================================================

    @app.route("/api/score", methods=["GET"])
    def get_score():
        """Collect a deferred score. Each result can be collected once."""
        results = app.config["CONVOCATE_RESULTS"]
        scoring_id = request.args.get("id", "").strip()
        if not scoring_id:
            return jsonify({"error": "Missing scoring ID"}), 400

        lookup = results.get(scoring_id)
        if lookup.status is TicketStatus.PENDING:
            return jsonify({"status": "pending"}), 202
        if lookup.status is TicketStatus.NOT_FOUND:
            return jsonify({"status": "not_found", "message": "Scoring request not found or expired"}), 404
        if lookup.status is TicketStatus.FAILED:
            return jsonify({"status": "error", "score": 0, "tips": [], "scored": False}), 500

        body = {"status": "complete"}
        body.update(lookup.result.to_dict())
        return jsonify(body)

    # =========================================================================
    # Usage API
    # =========================================================================

    @app.route("/api/usage", methods=["GET"])
    def get_usage():
        """Quota usage for the calling client."""
        ledger = app.config["CONVOCATE_LEDGER"]
        return jsonify(ledger.usage(client_id()))

    # =========================================================================
    # System Status
    # =========================================================================

    @app.route("/api/system/memory", methods=["GET"])
    def get_memory_status():
        """Get current memory usage status."""
        return jsonify(app.config["CONVOCATE_MONITOR"].get_status())

    @app.route("/api/health", methods=["GET"])
    def health_check():
        """Health check endpoint."""
        config = app.config["CONVOCATE_CONFIG"]
        runtime = app.config["CONVOCATE_RUNTIME"]

        ollama_status = "healthy" if runtime.check_health() else "unhealthy"

        return jsonify({
            "status": "healthy",
            "ollama": ollama_status,
            "models": {
                "style": config.models.style.model,
                "chat": config.models.chat.model,
                "score": config.models.score.model
            }
        })
