from flask import Flask, current_app
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['IDENTITY_PROVIDER'] = os.getenv('IDENTITY_PROVIDER', 'local')
    app.config['MIN_SECRET_LENGTH'] = int(os.getenv('MIN_SECRET_LENGTH', '6'))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    app.config['AUTO_CREATE_TABLES'] = os.getenv('AUTO_CREATE_TABLES', '0').lower() in ('1', 'true', 'yes')
    for key in ('KC_BASE_URL', 'KC_REALM', 'KC_ADMIN_REALM', 'KC_ADMIN_CLIENT_ID',
                'KC_ADMIN_CLIENT_SECRET', 'KC_LOGIN_CLIENT_ID', 'KC_HTTP_TIMEOUT'):
        app.config[key] = os.getenv(key)

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    level = str(app.config['LOG_LEVEL']).upper()
    app.logger.setLevel(level)
    logging.getLogger('inventory_iam').setLevel(level)

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

    if app.config['AUTO_CREATE_TABLES']:
        # dev convenience only; alembic owns the schema everywhere else
        from .models.account import Base
        from .models import audit  # noqa: F401
        Base.metadata.create_all(db_engine)
        app.logger.info('AUTO_CREATE_TABLES: schema ensured')

    jwt.init_app(app)

    from .services.identity import build_identity_provider
    app.extensions['identity_provider'] = build_identity_provider(app.config, get_db)

    from .routes.iam import iam_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')

    @app.teardown_appcontext
    def remove_session(exc=None):
        if SessionLocal is not None:
            SessionLocal.remove()

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    from .errors import IamError

    @app.errorhandler(IamError)
    def handle_iam_error(e):  # type: ignore
        if e.status >= 500:
            app.logger.error('%s: %s', type(e).__name__, getattr(e, 'cause', None) or e.detail)
        return e.to_payload(), e.status

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()


def get_directory():
    from .services.directory import SqlDirectoryStore
    return SqlDirectoryStore(get_db)


def get_identity_provider():
    return current_app.extensions['identity_provider']
