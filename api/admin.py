# api/admin.py
"""
Admin API: dashboard, user management, lead workflows and notification log
"""

from flask import Blueprint, request

from api.responses import success
from api.schemas import request_data
from middleware.security import current_user, require_admin
from services import leads, users
from services.notifications import retry_job

admin_bp = Blueprint('admin', __name__)

LEAD_KINDS = '<any(contacts, inquiries, quotes, "partnership-requests"):kind>'


@admin_bp.route('/api/admin/dashboard', methods=['GET'])
@require_admin
def dashboard():
    return success(users.dashboard())


# Users

@admin_bp.route('/api/admin/users', methods=['GET'])
@require_admin
def list_users():
    return success(users.list_users(request.args))


@admin_bp.route('/api/admin/users/<user_id>/role', methods=['PUT'])
@require_admin
def update_role(user_id):
    user = users.set_role(current_user(), user_id, request_data())
    return success({'user': user.to_dict(include_admin=True)}, 'User role updated successfully')


@admin_bp.route('/api/admin/users/<user_id>/status', methods=['PATCH'])
@require_admin
def update_user_status(user_id):
    user = users.set_active(current_user(), user_id, request_data())
    return success({'user': user.to_dict(include_admin=True)}, 'User status updated successfully')


# Notification log

@admin_bp.route('/api/admin/notifications', methods=['GET'])
@require_admin
def notifications():
    return success(users.list_notifications(request.args))


@admin_bp.route('/api/admin/notifications/<notification_id>/retry', methods=['POST'])
@require_admin
def retry_notification(notification_id):
    job = users.get_notification(notification_id)
    if job.status not in ('failed', 'skipped'):
        return success({'notification': job.to_dict()}, f"Notification is {job.status}; nothing to retry")
    retry_job(job)
    return success({'notification': job.to_dict()}, 'Notification re-queued')


# Leads

@admin_bp.route(f'/api/admin/{LEAD_KINDS}', methods=['GET'])
@require_admin
def list_leads(kind):
    result = leads.list_leads(kind, request.args)
    return success({'items': result['items'], 'pagination': result['pagination']})


@admin_bp.route(f'/api/admin/{LEAD_KINDS}/<lead_id>/status', methods=['PATCH'])
@require_admin
def update_lead_status(kind, lead_id):
    lead = leads.update_lead_status(kind, lead_id, request_data())
    return success({'item': lead.to_dict()}, 'Status updated successfully')


@admin_bp.route(f'/api/admin/{LEAD_KINDS}/<lead_id>', methods=['DELETE'])
@require_admin
def delete_lead(kind, lead_id):
    leads.delete_lead(kind, lead_id)
    return success(message='Deleted successfully')


@admin_bp.route('/api/admin/inquiries/stats', methods=['GET'])
@require_admin
def inquiry_stats():
    return success(leads.inquiry_stats())


@admin_bp.route('/api/admin/newsletter/stats', methods=['GET'])
@require_admin
def newsletter_stats():
    return success(leads.newsletter_stats())


@admin_bp.route('/api/admin/newsletter/subscribers', methods=['GET'])
@require_admin
def newsletter_subscribers():
    return success(leads.list_subscribers(request.args))
