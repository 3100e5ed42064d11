# api/catalog.py
"""
Catalog API: products, services, projects and partners

Each collection gets the same set of routes, built from its CatalogService.
"""

from flask import Blueprint, request

from api.responses import success
from api.schemas import request_data
from middleware.security import require_admin
from services.catalog import CatalogService, partners, products, projects, services


def make_catalog_blueprint(name: str, service: CatalogService, item_key: str,
                           upload_field: str = None, with_categories: bool = True,
                           with_featured: bool = True) -> Blueprint:
    bp = Blueprint(name, __name__)
    base = f"/api/{name}"
    label = service.spec.label

    def upload():
        return request.files.get(upload_field) if upload_field else None

    @bp.route(base, methods=['GET'])
    def list_items():
        result = service.list_public(request.args)
        return success({name: result['items'], 'pagination': result['pagination']})

    if with_categories:
        @bp.route(f"{base}/categories", methods=['GET'])
        def categories():
            return success({'categories': service.category_counts()})

    @bp.route(f"{base}/<item_id>", methods=['GET'])
    def get_item(item_id):
        return success({item_key: service.view(item_id).to_dict()})

    @bp.route(f"{base}/admin/all", methods=['GET'])
    @require_admin
    def admin_list():
        result = service.list_admin(request.args)
        return success({name: result['items'], 'pagination': result['pagination']})

    @bp.route(base, methods=['POST'])
    @require_admin
    def create_item():
        item = service.create(request_data(), upload())
        return success({item_key: item.to_dict(include_admin=True)}, f"{label} created successfully", 201)

    @bp.route(f"{base}/<item_id>", methods=['PUT'])
    @require_admin
    def update_item(item_id):
        item = service.update(item_id, request_data(), upload())
        return success({item_key: item.to_dict(include_admin=True)}, f"{label} updated successfully")

    @bp.route(f"{base}/<item_id>", methods=['DELETE'])
    @require_admin
    def delete_item(item_id):
        service.delete(item_id)
        return success(message=f"{label} deleted successfully")

    if with_featured:
        @bp.route(f"{base}/<item_id>/featured", methods=['PATCH'])
        @require_admin
        def toggle_featured(item_id):
            item = service.toggle_featured(item_id)
            return success({item_key: item.to_dict(include_admin=True)}, f"{label} featured status updated")

    return bp


products_bp = make_catalog_blueprint('products', products, 'product', upload_field='image')
services_bp = make_catalog_blueprint('services', services, 'service')
projects_bp = make_catalog_blueprint('projects', projects, 'project', upload_field='image')
partners_bp = make_catalog_blueprint('partners', partners, 'partner', upload_field='logo',
                                     with_categories=False, with_featured=False)
