# api/users.py
"""
Account self-service API
"""

from flask import Blueprint, request, session

from api.responses import success
from api.schemas import request_data
from middleware.security import current_user, require_auth, security_scan
from services import users

users_bp = Blueprint('users', __name__)


@users_bp.route('/api/users/profile', methods=['GET'])
@require_auth
def get_profile():
    return success({'user': current_user().to_dict()})


@users_bp.route('/api/users/profile', methods=['PUT'])
@require_auth
@security_scan()
def update_profile():
    user = users.update_profile(current_user(), request_data())
    return success({'user': user.to_dict()}, 'Profile updated successfully')


@users_bp.route('/api/users/password', methods=['PUT'])
@require_auth
def change_password():
    users.change_password(current_user(), request_data(), request.remote_addr)
    return success(message='Password changed successfully')


@users_bp.route('/api/users/activity', methods=['GET'])
@require_auth
def activity():
    user = current_user()
    entries = [a.to_dict() for a in reversed(user.activities)]
    return success({'activities': entries, 'total': len(entries)})


@users_bp.route('/api/users/account', methods=['DELETE'])
@require_auth
def delete_account():
    """Soft-disable the account and end the session"""
    users.deactivate(current_user())
    session.clear()
    return success(message='Account deactivated successfully')
