from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['TICKET_PREFIX'] = os.getenv('TICKET_PREFIX', 'FX')
    app.config['ENFORCE_TICKET_TRANSITIONS'] = _env_flag('ENFORCE_TICKET_TRANSITIONS')
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    app.config['SOCKETIO_MESSAGE_QUEUE'] = os.getenv('SOCKETIO_MESSAGE_QUEUE')

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    @app.teardown_appcontext
    def remove_session(exc=None):
        # objects are not expired on commit, so a thread must not keep its session across requests
        SessionLocal.remove()

    jwt.init_app(app)

    from .services.realtime import socketio
    socketio_options = {'cors_allowed_origins': '*'}
    if app.config['SOCKETIO_MESSAGE_QUEUE']:
        # needed when several worker processes share the same rooms
        socketio_options['message_queue'] = app.config['SOCKETIO_MESSAGE_QUEUE']
    socketio.init_app(app, **socketio_options)
    from .sockets import register_socket_handlers
    register_socket_handlers(socketio)

    from .routes.auth import auth_bp
    from .routes.organization import org_bp
    from .routes.customers import customers_bp
    from .routes.tickets import tickets_bp
    from .routes.notifications import notifications_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(org_bp, url_prefix='/organization')
    app.register_blueprint(customers_bp, url_prefix='/customers')
    app.register_blueprint(tickets_bp, url_prefix='/tickets')
    app.register_blueprint(notifications_bp, url_prefix='/notifications')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'code': getattr(e, 'error_code', None) or e.name.upper().replace(' ', '_'),
                    'title': e.name,
                    'detail': e.description,
                }
            }
            details = getattr(e, 'details', None)
            if details:
                payload['error']['details'] = details
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        get_db().rollback()
        return {
            'error': {
                'status': 500,
                'code': 'INTERNAL_ERROR',
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    app.logger.debug('application created for %s', db_url)
    return app


def get_db():
    return SessionLocal()
