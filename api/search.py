# api/search.py
"""
Public search endpoints
"""

from flask import Blueprint, request

from api.responses import success
from middleware.security import limiter
from services.search import search_service

search_bp = Blueprint('search', __name__)


@search_bp.route('/api/search', methods=['GET'])
@limiter.limit("60 per minute")
def search_all():
    return success(search_service.search_all(request.args))


@search_bp.route('/api/search/<any(products, services, projects, awards):kind>', methods=['GET'])
@limiter.limit("60 per minute")
def search_kind(kind):
    return success(search_service.search(kind, request.args))
