# app.py
"""
Flask application factory for the SAP Technologies site backend

Wires together:
- SQLAlchemy models, migrations and query monitoring
- Security manager, CSRF protection, rate limiting and CORS
- Upload storage, Redis cache and certificate rendering
- Celery for notification e-mail and certificate generation
- JSON error envelope, health checks and CLI commands
"""

import os
import logging
import logging.handlers
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import click
from flask import Flask, current_app, g, has_app_context, jsonify, request, send_from_directory
from flask_cors import CORS
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFError
from pydantic import ValidationError
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException, NotFound
from werkzeug.middleware.proxy_fix import ProxyFix

from api.admin import admin_bp
from api.auth import auth_bp
from api.awards import awards_bp
from api.catalog import partners_bp, products_bp, projects_bp, services_bp
from api.certificates import certificates_bp
from api.leads import leads_bp
from api.responses import failure
from api.schemas import validation_errors
from api.search import search_bp
from api.users import users_bp
from config.settings import CONFIG_BY_NAME
from core.database_models import db, User
from core.exceptions import AppError
from core.security_manager import init_security_manager
from middleware.security import csrf, enforce_idle_timeout, limiter, security_headers
from services.cache import CacheService, cache
from services.certificates import CertificateService
from services.mailer import Mailer
from services.storage import UploadStorage
from tasks.worker import init_celery

migrate = Migrate()

PRIVATE_UPLOAD_FOLDERS = {'signatures'}


def _install_handler(root_logger: logging.Logger, handler: logging.Handler, kind: str) -> None:
    """Attach handler, replacing one of the same kind left by an earlier app"""
    for existing in list(root_logger.handlers):
        if getattr(existing, '_sap_handler', None) == kind:
            root_logger.removeHandler(existing)
            existing.close()
    handler._sap_handler = kind
    root_logger.addHandler(handler)


def setup_logging(app: Flask) -> None:
    """
    Configure application logging

    Console output always; syslog in production and an optional rotating
    file when LOG_FILE is set.
    """
    app.logger.handlers.clear()

    console_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-20s %(levelname)-8s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    syslog_formatter = logging.Formatter(
        fmt='%(name)s[%(process)d]: %(levelname)s %(message)s'
    )
    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-20s %(levelname)-8s %(funcName)-15s:%(lineno)-4d %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    log_level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if not any(getattr(h, '_sap_handler', None) == 'console' for h in root_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(console_formatter)
        _install_handler(root_logger, console_handler, 'console')

    if app.config.get('LOG_TO_SYSLOG'):
        address = app.config.get('SYSLOG_ADDRESS', '/dev/log')
        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=address if os.path.exists(address) else ('localhost', 514)
            )
        except OSError as e:
            app.logger.warning(f"Syslog unavailable ({e}), continuing with console logging")
        else:
            syslog_handler.setFormatter(syslog_formatter)
            syslog_handler.setLevel(log_level)
            _install_handler(root_logger, syslog_handler, 'syslog')

    log_file = app.config.get('LOG_FILE')
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(detailed_formatter)
        file_handler.setLevel(logging.DEBUG)
        _install_handler(root_logger, file_handler, 'file')

    # Suppress verbose third-party logs outside debug
    if not app.debug:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('PIL').setLevel(logging.WARNING)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@event.listens_for(Engine, "before_cursor_execute")
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault('query_start_time', []).append(datetime.now())


@event.listens_for(Engine, "after_cursor_execute")
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Log slow queries for performance monitoring"""
    started = conn.info.get('query_start_time')
    if not started:
        return
    total = (datetime.now() - started.pop()).total_seconds()
    threshold = current_app.config.get('SLOW_QUERY_THRESHOLD', 1.0) if has_app_context() else 1.0
    if total > threshold:
        logging.getLogger('sqlalchemy.slow').warning(f"Slow query ({total:.2f}s): {statement[:100]}...")


def configure_database(app: Flask) -> None:
    """Configure SQLAlchemy with pooling for server databases"""
    database_url = app.config['SQLALCHEMY_DATABASE_URI']

    engine_options: Dict[str, Any] = {'pool_pre_ping': True}
    if not database_url.startswith('sqlite'):
        engine_options.update({
            'pool_size': app.config.get('DB_POOL_SIZE', 10),
            'max_overflow': app.config.get('DB_MAX_OVERFLOW', 20),
            'pool_recycle': 3600,   # Recycle connections every hour
        })
    if 'postgresql' in database_url:
        engine_options['connect_args'] = {
            'application_name': 'sap_site',
            'connect_timeout': 10,
        }
    app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', engine_options)

    db.init_app(app)
    migrate.init_app(app, db)

    app.logger.info(f"Database configured: {database_url.split('@')[-1] if '@' in database_url else database_url}")


def configure_security(app: Flask) -> None:
    init_security_manager(app)
    csrf.init_app(app)
    limiter.init_app(app)

    CORS(app,
         origins=app.config.get('CORS_ORIGINS', ['http://localhost:3000']),
         supports_credentials=True,
         allow_headers=['Content-Type', 'Authorization', 'X-CSRFToken', 'X-CSRF-Token'])

    app.logger.info("Security features configured")


def configure_services(app: Flask) -> None:
    Mailer().init_app(app)
    UploadStorage().init_app(app)
    CacheService().init_app(app)
    CertificateService().init_app(app)
    init_celery(app)


def register_blueprints(app: Flask) -> None:
    for blueprint in (auth_bp, users_bp, awards_bp, certificates_bp,
                      products_bp, services_bp, projects_bp, partners_bp,
                      leads_bp, search_bp, admin_bp):
        app.register_blueprint(blueprint)

    app.logger.info("Application blueprints registered")


def configure_error_handlers(app: Flask) -> None:
    """Map every error onto the {status, message} envelope"""

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.status_code >= 500:
            app.logger.error(f"{error.__class__.__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        return failure('Validation failed', 400, status='error', errors=validation_errors(error))

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error: IntegrityError):
        db.session.rollback()
        app.logger.warning(f"Integrity error on {request.path}: {error.orig}")
        return failure('Duplicate or conflicting value', 400)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error: CSRFError):
        app.logger.warning(f"CSRF failure from {request.remote_addr}: {error.description}")
        return failure('CSRF token missing or invalid', 400)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        if error.code == 404:
            return failure(f"Route {request.path} not found", 404)
        if error.code == 413:
            limit_mb = app.config['MAX_CONTENT_LENGTH'] // (1024 * 1024)
            return failure(f"File too large. Maximum size is {limit_mb}MB", 413)
        if error.code == 429:
            app.logger.warning(f"Rate limit exceeded for {request.remote_addr}")
            return failure('Too many requests. Please try again later.', 429)
        if error.code == 405:
            return failure(f"Method {request.method} not allowed for {request.path}", 405)
        return failure(error.description or error.name, error.code)

    @app.errorhandler(Exception)
    def handle_exception(error: Exception):
        if isinstance(error, SQLAlchemyError):
            db.session.rollback()
        app.logger.error(f"Unhandled exception on {request.method} {request.path}: {error}", exc_info=True)
        message = str(error) if app.debug else 'Something went wrong!'
        return failure(message, 500, status='error')


def configure_health_checks(app: Flask) -> None:

    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': app.config.get('VERSION', '1.0.0')
        })

    @app.route('/health/detailed')
    def detailed_health_check():
        """Detailed health check with component status"""
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'components': {}
        }

        try:
            db.session.execute(text('SELECT 1'))
            health_status['components']['database'] = 'healthy'
        except SQLAlchemyError as e:
            health_status['components']['database'] = f'unhealthy: {e}'
            health_status['status'] = 'unhealthy'

        if cache.enabled:
            if cache.ping():
                health_status['components']['redis'] = 'healthy'
            else:
                health_status['components']['redis'] = 'unreachable'
                health_status['status'] = 'degraded'
        else:
            health_status['components']['redis'] = 'disabled'

        status_code = 503 if health_status['status'] == 'unhealthy' else 200
        return jsonify(health_status), status_code


def configure_uploads(app: Flask) -> None:

    @app.route('/uploads/<path:filename>')
    def uploaded_file(filename):
        if filename.split('/', 1)[0] in PRIVATE_UPLOAD_FOLDERS:
            raise NotFound()
        return send_from_directory(app.config['UPLOAD_FOLDER'], filename)


def configure_request_middleware(app: Flask) -> None:

    @app.before_request
    def before_request():
        g.start_time = datetime.now(timezone.utc)
        if request.path.startswith('/api/admin'):
            app.logger.info(f"Admin endpoint access: {request.endpoint} from {request.remote_addr}")
        return enforce_idle_timeout()

    @app.after_request
    def after_request(response):
        response = security_headers(response)

        if hasattr(g, 'start_time'):
            duration = (datetime.now(timezone.utc) - g.start_time).total_seconds() * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 1000):
                app.logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")
        return response


def register_commands(app: Flask) -> None:

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        db.create_all()
        click.echo('Database tables created')

    @app.cli.command('create-admin')
    @click.option('--name', prompt=True)
    @click.option('--email', prompt=True)
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    def create_admin_command(name, email, password):
        """Create an administrator account, or promote an existing user."""
        from core.security_manager import security_manager

        email = email.strip().lower()
        user = db.session.query(User).filter_by(email=email).first()
        if user is None:
            user = User(name=name, email=email, password_hash=security_manager.hash_password(password))
            db.session.add(user)
        user.role = 'admin'
        user.is_active = True
        db.session.commit()
        click.echo(f"Administrator {email} ready")


def create_app(config_name: Optional[str] = None,
               config_overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Flask application factory

    Args:
        config_name: 'development', 'testing' or 'production'; defaults to FLASK_ENV
        config_overrides: settings applied after the environment config

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__, instance_relative_config=True)

    config_name = config_name or os.environ.get('FLASK_ENV', 'production')
    app.config.from_object(CONFIG_BY_NAME.get(config_name, CONFIG_BY_NAME['production']))
    app.config['ENV_NAME'] = config_name
    if config_overrides:
        app.config.update(config_overrides)

    # Behind nginx in production
    if config_name == 'production':
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    setup_logging(app)
    app.logger.info(f"Starting SAP Technologies backend in {config_name} mode")

    configure_database(app)
    configure_security(app)
    configure_services(app)
    register_blueprints(app)
    configure_error_handlers(app)
    configure_health_checks(app)
    configure_uploads(app)
    configure_request_middleware(app)
    register_commands(app)

    # Production schema changes go through migrations
    if config_name in ('development', 'testing'):
        with app.app_context():
            if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite:///'):
                Path(app.config['SQLALCHEMY_DATABASE_URI'][len('sqlite:///'):]).parent.mkdir(
                    parents=True, exist_ok=True)
            db.create_all()
            app.logger.info("Database tables created")

    app.logger.info("Flask application factory completed successfully")
    return app


if __name__ == '__main__':
    create_app('development').run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True)
