# api/awards.py
"""
Awards API: categories, public nominations and voting, admin review
"""

from flask import Blueprint, request

from api.responses import success
from api.schemas import request_data
from middleware.security import current_user, limiter, require_admin, security_scan
from services.awards import awards_service

awards_bp = Blueprint('awards', __name__)


# Public

@awards_bp.route('/api/awards/categories', methods=['GET'])
def list_categories():
    return success({'categories': awards_service.list_categories()})


@awards_bp.route('/api/awards/nominations', methods=['POST'])
@limiter.limit("10 per hour")
@security_scan()
def submit_nomination():
    nomination = awards_service.submit_nomination(request_data(), request.files.get('nomineePhoto'))
    return success(
        {'nomination': nomination.to_dict()},
        'Nomination submitted successfully! It will be reviewed before being published.',
        201,
    )


@awards_bp.route('/api/awards/nominations', methods=['GET'])
def list_nominations():
    return success(awards_service.list_public_nominations(request.args))


@awards_bp.route('/api/awards/nominations/<id_or_slug>', methods=['GET'])
def get_nomination(id_or_slug):
    nomination = awards_service.get_public_nomination(id_or_slug)
    return success({'nomination': nomination.to_dict()})


@awards_bp.route('/api/awards/nominations/<nomination_id>/vote', methods=['POST'])
@limiter.limit("20 per hour")
@security_scan()
def vote(nomination_id):
    result = awards_service.cast_vote(nomination_id, request_data(), request.remote_addr)
    return success(result, 'Vote submitted successfully!')


@awards_bp.route('/api/awards/nominations/<nomination_id>/vote-status', methods=['GET'])
def vote_status(nomination_id):
    return success(awards_service.vote_status(nomination_id, request.args.get('email')))


# Admin

@awards_bp.route('/api/awards/admin/categories', methods=['POST'])
@require_admin
def create_category():
    category = awards_service.create_category(request_data())
    return success({'category': category.to_dict()}, 'Category created successfully', 201)


@awards_bp.route('/api/awards/admin/categories/<category_id>', methods=['PUT'])
@require_admin
def update_category(category_id):
    category = awards_service.update_category(category_id, request_data())
    return success({'category': category.to_dict()}, 'Category updated successfully')


@awards_bp.route('/api/awards/admin/categories/<category_id>', methods=['DELETE'])
@require_admin
def delete_category(category_id):
    awards_service.delete_category(category_id)
    return success(message='Category deleted successfully')


@awards_bp.route('/api/awards/admin/nominations', methods=['GET'])
@require_admin
def admin_nominations():
    return success(awards_service.list_admin_nominations(request.args))


@awards_bp.route('/api/awards/admin/nominations/<nomination_id>/status', methods=['PATCH'])
@require_admin
def update_status(nomination_id):
    result = awards_service.change_status(nomination_id, request_data(), current_user())
    return success(result, 'Nomination status updated successfully')


@awards_bp.route('/api/awards/admin/nominations/<nomination_id>', methods=['PUT'])
@require_admin
def update_nomination(nomination_id):
    nomination = awards_service.update_nomination(
        nomination_id, request_data(), request.files.get('nomineePhoto')
    )
    return success({'nomination': nomination.to_dict(include_admin=True)}, 'Nomination updated successfully')


@awards_bp.route('/api/awards/admin/nominations/<nomination_id>', methods=['DELETE'])
@require_admin
def delete_nomination(nomination_id):
    awards_service.delete_nomination(nomination_id)
    return success(message='Nomination deleted successfully')


@awards_bp.route('/api/awards/admin/stats', methods=['GET'])
@require_admin
def stats():
    return success(awards_service.stats())
