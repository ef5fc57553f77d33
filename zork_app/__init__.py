# zork_app/__init__.py
import datetime
import logging
import os
from datetime import timezone
from logging.config import dictConfig

import click
import redis
from flask import Flask, jsonify
from flask_cors import CORS
from sqlalchemy import text
from werkzeug.middleware.proxy_fix import ProxyFix

from .config.config import Config
from .utils.logging_utils import build_logging_config

# --- Logging Configuration ---
os.makedirs(Config.LOG_DIR, exist_ok=True)
dictConfig(build_logging_config(Config.LOG_DIR, Config.LOG_LEVEL))
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
}


def create_app(config_class=Config, assistant_client=None, redis_client=None):
    logger.info("--- Creating Flask Application Instance ---")
    app = Flask(__name__)
    app.config.from_object(config_class)

    hops = app.config.get("TRUSTED_PROXY_HOPS", 0)
    if hops:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=hops, x_proto=hops, x_host=hops)
        logger.info(f"Trusting X-Forwarded-* headers from {hops} proxy hop(s).")

    # Shared Redis client, used for cross-process locks and rate limiting.
    if redis_client is not None:
        app.redis_client = redis_client
    elif app.config.get("REDIS_URL") and (app.config.get("RATE_LIMIT_ENABLED") or app.config.get("LOCK_BACKEND") == "redis"):
        try:
            app.redis_client = redis.Redis.from_url(app.config["REDIS_URL"])
            logger.info(f"Redis client initialized using URL: {app.config['REDIS_URL']}")
        except Exception as e:
            logger.exception(f"Failed to initialize Redis client: {e}")
            app.redis_client = None
    else:
        app.redis_client = None

    logger.info(f"Flask Environment: {app.config.get('FLASK_ENV', 'not_set')}")
    logger.info(f"Debug Mode: {app.config.get('DEBUG', False)}")

    from .utils import db_utils
    if db_utils.init_db(app) and app.config.get("AUTO_CREATE_TABLES"):
        db_utils.create_all_tables()

    # --- Services ---
    from .services.assistant_client import AssistantClient
    from .services.chat_service import build_chat_service
    from .services.rate_limiter import build_rate_limiter

    if assistant_client is None:
        try:
            assistant_client = AssistantClient.from_config(app.config)
        except Exception as e:
            logger.error(f"OpenAI assistant client not available: {e}")
            assistant_client = None
    app.chat_service = build_chat_service(app.config, assistant_client, app.redis_client) if assistant_client else None
    app.rate_limiter = build_rate_limiter(app.config, app.redis_client)

    # --- HTTP wiring ---
    CORS(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS") or "*"}},
         methods=["GET", "POST", "PUT", "DELETE"], allow_headers=["Content-Type", "Authorization"])

    @app.after_request
    def add_security_headers(response):
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    from .api.errors import register_error_handlers
    register_error_handlers(app)

    from .api import api_bp as api_module_blueprint
    app.register_blueprint(api_module_blueprint)
    logger.info(f"Main API Blueprint '{api_module_blueprint.name}' registered under url_prefix: {api_module_blueprint.url_prefix}")

    register_root_routes(app)
    register_cli_commands(app)

    logger.info("--- Zork Application Initialization Complete ---")
    return app


def register_root_routes(app):

    @app.route('/health', methods=['GET'])
    def health_check():
        """Performs a health check on the application and its database connection."""
        from .utils import db_utils
        db_ok = False
        try:
            with db_utils.get_db_session() as session:
                if session is not None:
                    session.execute(text("SELECT 1"))
                    db_ok = True
        except Exception as e:
            logger.error(f"Database health check failed: {e}", exc_info=True)

        redis_ok = None
        if app.config.get("RATE_LIMIT_ENABLED") or app.config.get("LOCK_BACKEND") == "redis":
            from .extensions import get_redis_client
            try:
                client = get_redis_client()
                redis_ok = bool(client is not None and client.ping())
            except Exception as e:
                logger.error(f"Redis health check failed: {e}")
                redis_ok = False

        return jsonify({
            "status": "OK",
            "message": "API funcionando correctamente",
            "database_connected": db_ok,
            "redis_connected": redis_ok,
            "timestamp": datetime.datetime.now(timezone.utc).isoformat(),
            "version": API_VERSION,
        }), 200

    @app.route('/', methods=['GET'])
    def index():
        return jsonify({
            "message": "Zork Argento API - Conecta con OpenAI",
            "version": API_VERSION,
            "endpoints": {
                "health": "/health",
                "chat": "/api/chat",
                "context": "/api/context/<conversationId>",
                "history": "/api/history/<conversationId>",
                "conversations": "/api/conversations",
                "models": "/api/models",
                "status": "/api/status",
            },
        }), 200


def register_cli_commands(app):

    @app.cli.command("create-db")
    def create_db_command():
        """Create the conversations table if it does not exist."""
        from .utils import db_utils
        logger.info("Database table creation triggered via CLI.")
        if db_utils.create_all_tables():
            click.echo("Database tables created successfully.")
        else:
            click.echo("Error: database tables could not be created. See logs.", err=True)

    @app.cli.command("list-conversations")
    def list_conversations_command():
        """Print every stored conversation -> thread mapping, newest first."""
        from .services.conversation_store import ConversationStore
        records = ConversationStore().list_all()
        for record in records:
            click.echo(f"{record.conversation_id}\t{record.thread_id}\t{record.created_at}")
        click.echo(f"{len(records)} conversation(s).")

    @app.cli.command("create-assistant")
    @click.option("--prompt-file", default=None, help="System prompt file (defaults to SYSTEM_PROMPT_FILE).")
    @click.option("--model", default=None, help="Model for the assistant (defaults to OPENAI_MODEL).")
    def create_assistant_command(prompt_file, model):
        """Create the OpenAI Assistant from the system prompt and print its ID."""
        from .create_assistant import create_zork_assistant
        service = getattr(app, "chat_service", None)
        if service is None:
            click.echo("Error: OPENAI_API_KEY is not configured.", err=True)
            return
        assistant_id = create_zork_assistant(
            service.assistant.client,
            prompt_file or app.config["SYSTEM_PROMPT_FILE"],
            model or app.config["OPENAI_MODEL"],
        )
        click.echo(f"OPENAI_ASSISTANT_ID={assistant_id}")

    logger.info("Custom CLI commands registered.")
