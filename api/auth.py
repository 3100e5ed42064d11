# api/auth.py
"""
Session Authentication API with 2FA Support
"""

import logging

from flask import Blueprint, request, session
from flask_wtf.csrf import generate_csrf

from api.responses import success
from api.schemas import request_data
from core.database_models import utcnow
from core.security_manager import security_manager
from middleware.security import current_user, limiter, require_auth, security_scan
from services import users
from services.users import TwoFactorRequired

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


def _start_session(user):
    session.clear()
    session.permanent = True
    session.update({
        'user_id': str(user.id),
        'role': user.role,
        'login_time': utcnow().isoformat(),
        'last_activity': utcnow().isoformat(),
    })


@auth_bp.route('/api/auth/signup', methods=['POST'])
@limiter.limit("5 per minute")
@security_scan()
def signup():
    user = users.signup(request_data(), request.remote_addr, request.headers.get('User-Agent'))
    _start_session(user)
    return success({'user': user.to_dict()}, 'Account created successfully', 201)


@auth_bp.route('/api/auth/login', methods=['POST'])
@limiter.limit("5 per minute")
def login():
    """
    Password login; accounts with 2FA enabled must also send totpCode
    """
    try:
        user = users.authenticate(request_data(), request.remote_addr, request.headers.get('User-Agent'))
    except TwoFactorRequired:
        return success({'requires2fa': True}, 'Two-factor authentication required')

    _start_session(user)
    return success({'user': user.to_dict()}, 'Login successful')


@auth_bp.route('/api/auth/forgot-password', methods=['POST'])
@limiter.limit("5 per minute")
def forgot_password():
    users.request_password_reset(request_data(), request.remote_addr)
    return success(message='If an account with that email exists, you will receive a password reset code shortly.')


@auth_bp.route('/api/auth/resend-reset-code', methods=['POST'])
@limiter.limit("5 per minute")
def resend_reset_code():
    users.request_password_reset(request_data(), request.remote_addr)
    return success(message='If an account with that email exists, you will receive a new verification code.')


@auth_bp.route('/api/auth/reset-password', methods=['POST'])
@limiter.limit("5 per minute")
def reset_password():
    users.reset_password(request_data(), request.remote_addr)
    return success(message='Password has been reset successfully. You can now log in with your new password.')


@auth_bp.route('/api/auth/logout', methods=['POST'])
def logout():
    user_id = session.get('user_id')
    security_manager.log_security_event('logout', {'user_id': user_id})
    session.clear()
    return success(message='Logged out successfully')


@auth_bp.route('/api/auth/account', methods=['GET'])
@require_auth
def account():
    return success({'user': current_user().to_dict()})


@auth_bp.route('/api/auth/check', methods=['GET'])
def check():
    user = current_user()
    return success({
        'authenticated': user is not None,
        'user': user.to_dict() if user is not None else None,
    })


@auth_bp.route('/api/auth/csrf-token', methods=['GET'])
def csrf_token():
    return success({'csrfToken': generate_csrf()})


@auth_bp.route('/api/auth/setup-2fa', methods=['POST'])
@require_auth
def setup_2fa():
    """Start 2FA setup; the secret is held in the session until verified"""
    secret, qr_uri = users.start_two_factor_setup(current_user())
    session['temp_2fa_secret'] = secret
    return success({
        'secret': secret,
        'qrUri': qr_uri,
    }, 'Scan QR code with authenticator app and verify')


@auth_bp.route('/api/auth/verify-2fa', methods=['POST'])
@require_auth
def verify_2fa_setup():
    user = users.activate_two_factor(current_user(), session.get('temp_2fa_secret'), request_data())
    session.pop('temp_2fa_secret', None)
    return success({'user': user.to_dict()}, '2FA activated successfully')


@auth_bp.route('/api/auth/disable-2fa', methods=['POST'])
@require_auth
def disable_2fa():
    user = users.disable_two_factor(current_user(), request_data())
    return success({'user': user.to_dict()}, '2FA disabled successfully')
