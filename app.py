import logging
import sys

from flask import Flask, jsonify

from config import Config, ConfigurationError, missing_settings
from extensions import db, limiter
from routes.webhook import webhook_bp
from services.messenger import LineMessenger
from services.object_store import ObjectStore
from services.session_store import InMemorySessionStore


def configure_logging(level_name: str = 'INFO') -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app.config.get('LOG_LEVEL', 'INFO'))

    # Fail fast on missing settings
    missing = missing_settings(app.config)
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    # Initialize Extensions
    db.init_app(app)
    limiter.init_app(app)

    # Process-wide services, shared by every request thread
    app.extensions['line_drive'] = {
        'messenger': LineMessenger(app.config['LINE_CHANNEL_SECRET'], app.config['LINE_CHANNEL_TOKEN']),
        'object_store': ObjectStore.from_config(app.config),
        'session_store': InMemorySessionStore(),
    }

    # Register Blueprints
    app.register_blueprint(webhook_bp)

    # Create Database Tables
    with app.app_context():
        db.create_all()

    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify(error="ratelimit exceeded", message=str(e.description)), 429

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        return response

    return app


if __name__ == '__main__':
    try:
        app = create_app()
    except ConfigurationError as e:
        logging.getLogger(__name__).critical(f"Startup aborted: {e}")
        sys.exit(1)

    from waitress import serve
    port = app.config['PORT']
    threads = app.config['WAITRESS_THREADS']
    app.logger.info(f"Server is running at port {port} ({threads} threads)")
    serve(app, host='0.0.0.0', port=port, threads=threads)
