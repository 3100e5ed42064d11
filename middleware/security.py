# middleware/security.py
"""
Security Middleware for Request Processing
"""

import logging
from datetime import datetime
from functools import wraps

from flask import current_app, g, request, session
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect

from api.responses import failure
from core.database_models import db, User, parse_uuid, utcnow
from core.exceptions import NotFoundError
from core.security_manager import security_manager, ThreatLevel

logger = logging.getLogger(__name__)

# Bound to the app in create_app
limiter = Limiter(key_func=get_remote_address)
csrf = CSRFProtect()

BLOCKING_LEVELS = (ThreatLevel.HIGH, ThreatLevel.CRITICAL)


def security_headers(response):
    """Add security headers to all responses"""
    for header, value in current_app.config.get('SECURITY_HEADERS', {}).items():
        response.headers.setdefault(header, value)
    if request.path.startswith('/api/'):
        response.headers['Cache-Control'] = 'no-store'
    return response


def enforce_idle_timeout():
    """Drop sessions that have been idle longer than SESSION_IDLE_TIMEOUT"""
    if 'user_id' not in session:
        return None

    now = utcnow()
    last_activity = session.get('last_activity')
    idle_timeout = current_app.config['SESSION_IDLE_TIMEOUT']
    if last_activity:
        try:
            idle = now - datetime.fromisoformat(last_activity)
        except ValueError:
            idle = idle_timeout
        if idle >= idle_timeout:
            security_manager.log_security_event('session_expired', {'user_id': session.get('user_id')})
            session.clear()
            return None

    session['last_activity'] = now.isoformat()
    return None


def current_user():
    """User of the current session, loaded once per request"""
    if 'current_user' not in g:
        user = None
        user_id = session.get('user_id')
        if user_id:
            try:
                user = db.session.get(User, parse_uuid(user_id, 'User not found'))
            except NotFoundError:
                user = None
            if user is not None and not user.is_active:
                session.clear()
                user = None
        g.current_user = user
    return g.current_user


def require_auth(f):
    """Decorator to require authentication"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_user() is None:
            security_manager.log_security_event('unauthorized_access_attempt', {
                'endpoint': request.endpoint,
                'method': request.method
            })
            return failure('Authentication required', 401)
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """Decorator to require an authenticated admin"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = current_user()
        if user is None:
            return failure('Authentication required', 401)
        if not user.is_admin:
            security_manager.log_security_event('admin_access_denied', {
                'user_id': str(user.id),
                'endpoint': request.endpoint
            })
            return failure('Admin access required', 403)
        return f(*args, **kwargs)
    return decorated_function


def security_scan():
    """Reject public form input carrying script or markup injection"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            request_data = {}
            if request.is_json:
                body = request.get_json(silent=True)
                if isinstance(body, dict):
                    request_data.update(body)
            if request.form:
                request_data.update(request.form.to_dict())

            threats = security_manager.detect_threats(request_data)
            for threat in threats:
                security_manager.log_security_event('security_threat_detected', {
                    'threat_type': threat.violation_type,
                    'severity': threat.severity.value,
                    'endpoint': request.endpoint,
                    'details': threat.details
                })

            if any(t.severity in BLOCKING_LEVELS for t in threats):
                return failure('Security violation detected', 403)

            return f(*args, **kwargs)
        return decorated_function
    return decorator
