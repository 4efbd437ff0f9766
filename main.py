import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_session import Session
from datetime import timedelta
from redis import Redis
from werkzeug.middleware.proxy_fix import ProxyFix

from whisperwalls import config
from whisperwalls.exceptions import WhisperWallsError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.update(config.as_dict())
    if overrides:
        app.config.update(overrides)
    app.secret_key = app.config['SECRET_KEY']

    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    CORS(app, supports_credentials=True)

    app.config.update(
        SESSION_PERMANENT=True,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE='Lax',
        PERMANENT_SESSION_LIFETIME=timedelta(hours=app.config['SESSION_LIFETIME_HOURS'])
    )

    if app.config['SESSION_TYPE'] == 'redis':
        app.config.update(
            SESSION_REDIS=Redis(
                host=app.config['REDIS_HOST'],
                port=app.config['REDIS_PORT'],
                socket_timeout=5,
            ),
            SESSION_USE_SIGNER=True,
        )
        Session(app)

    from whisperwalls.extensions import limiter
    limiter.init_app(app)

    from whisperwalls.database import init_database, cleanup_expired_tokens, cleanup_expired_ip_locks
    init_database()
    cleanup_expired_tokens()
    cleanup_expired_ip_locks()

    from whisperwalls.routes import system_bp, auth_bp, account_bp, whispers_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(account_bp)
    app.register_blueprint(whispers_bp)

    @app.before_request
    def log_request():
        logger.debug(f"--> {request.method} {request.path}")

    @app.errorhandler(WhisperWallsError)
    def domain_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "not_found", "message": "Endpoint not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "method_not_allowed", "message": "Method not allowed"}), 405

    @app.errorhandler(429)
    def rate_limit_handler(e):
        return jsonify({"error": "rate_limited", "message": str(e.description)}), 429

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Unhandled error: {error}")
        return jsonify({"error": "internal_error", "message": "Internal server error"}), 500

    return app


def main():
    app = create_app()

    app.run(
        host=config.HOST,
        port=config.PORT,
        debug=config.DEBUG
    )


if __name__ == "__main__":
    main()
