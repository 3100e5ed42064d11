# services/catalog.py
"""
Catalog showcases: products, services, projects and partners

The four collections share one shape (public listing of visible items,
admin CRUD, featured toggle), so a single service class is configured per
model with the columns that differ.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type

from sqlalchemy import func, true
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import FileStorage

from api.schemas import PartnerSchema, ProductSchema, ProjectSchema, ServiceSchema, merge_update, parse_payload
from core.database_models import db, Partner, Product, Project, Service, parse_uuid
from core.exceptions import BadRequestError, NotFoundError
from core.pagination import page_args, paginate
from services.storage import storage

logger = logging.getLogger(__name__)


def _product_fields(data: ProductSchema) -> Dict[str, Any]:
    return {
        'name': data.name,
        'short_description': data.short_description,
        'technical_description': data.technical_description,
        'technical_specs': [spec.model_dump() for spec in data.technical_specs],
        'features': data.features,
        'image': data.image,
        'category': data.category,
        'price_amount': data.price.amount,
        'price_currency': data.price.currency,
        'price_type': data.price.type,
        'availability': data.availability,
        'tags': data.tags,
        'display_order': data.display_order,
        'is_active': data.is_active,
        'is_featured': data.is_featured,
    }


def _service_fields(data: ServiceSchema) -> Dict[str, Any]:
    return {
        'title': data.title,
        'description': data.description,
        'long_description': data.long_description,
        'icon': data.icon,
        'category': data.category,
        'starting_price': data.price.starting_price,
        'currency': data.price.currency,
        'price_type': data.price.price_type,
        'features': data.features,
        'technologies': [tech.model_dump() for tech in data.technologies],
        'duration': data.duration,
        'images': data.images,
        'status': data.status,
        'featured': data.featured,
        'display_order': data.display_order,
    }


def _project_fields(data: ProjectSchema) -> Dict[str, Any]:
    return {
        'title': data.title,
        'description': data.description,
        'long_description': data.long_description,
        'category': data.category,
        'client': data.client.model_dump(),
        'technologies': data.technologies,
        'features': [feature.model_dump() for feature in data.features],
        'image': data.image,
        'images': data.images,
        'links': data.links.model_dump(),
        'status': data.status,
        'featured': data.featured,
        'display_order': data.display_order,
    }


def _partner_fields(data: PartnerSchema) -> Dict[str, Any]:
    return {
        'name': data.name,
        'logo': data.logo,
        'website': data.website,
        'description': data.description,
        'is_active': data.is_active,
        'display_order': data.display_order,
    }


@dataclass
class CatalogSpec:
    model: Type[db.Model]
    schema: Type
    to_fields: Callable
    label: str
    upload_folder: str
    image_field: Optional[str]
    visible: Callable  # query filter for public listings
    featured_column: Optional[str]
    name_column: str


class CatalogService:
    """CRUD and public listings for one catalog collection"""

    def __init__(self, spec: CatalogSpec):
        self.spec = spec

    @property
    def model(self):
        return self.spec.model

    def get(self, item_id):
        not_found = f"{self.spec.label} not found"
        item = db.session.get(self.model, parse_uuid(item_id, not_found))
        if item is None:
            raise NotFoundError(not_found)
        return item

    def _ordered(self, query, sort: Optional[str]):
        model = self.model
        if sort == 'name':
            return query.order_by(getattr(model, self.spec.name_column).asc())
        if sort == 'category':
            return query.order_by(model.category.asc(), getattr(model, self.spec.name_column).asc())
        if sort == 'newest':
            return query.order_by(model.created_at.desc())
        return query.order_by(model.display_order.asc(), model.created_at.desc())

    def list_public(self, args) -> Dict[str, Any]:
        query = db.session.query(self.model).filter(self.spec.visible(self.model))
        category = args.get('category')
        if category and hasattr(self.model, 'category'):
            query = query.filter(self.model.category == category)
        featured = args.get('featured')
        if self.spec.featured_column and featured is not None and featured.lower() in ('true', '1'):
            query = query.filter(getattr(self.model, self.spec.featured_column).is_(True))

        page, limit = page_args(args, default_limit=20)
        result_page = paginate(self._ordered(query, args.get('sort')), page, limit)
        return {
            'items': [item.to_dict() for item in result_page.items],
            'pagination': result_page.meta(),
        }

    def list_admin(self, args) -> Dict[str, Any]:
        query = db.session.query(self.model)
        category = args.get('category')
        if category and hasattr(self.model, 'category'):
            query = query.filter(self.model.category == category)
        page, limit = page_args(args, default_limit=50)
        result_page = paginate(self._ordered(query, args.get('sort') or 'newest'), page, limit)
        return {
            'items': [item.to_dict(include_admin=True) for item in result_page.items],
            'pagination': result_page.meta(),
        }

    def category_counts(self) -> list:
        rows = db.session.query(self.model.category, func.count(self.model.id)).filter(
            self.spec.visible(self.model)
        ).group_by(self.model.category).order_by(self.model.category).all()
        return [{'category': category, 'count': count} for category, count in rows]

    def view(self, item_id):
        """Public detail read; counts a view"""
        item = self.get(item_id)
        if not db.session.query(self.model.id).filter(
            self.model.id == item.id, self.spec.visible(self.model)
        ).first():
            raise NotFoundError(f"{self.spec.label} not found")
        if hasattr(item, 'views'):
            item.views = (item.views or 0) + 1
            db.session.commit()
        return item

    def _with_upload(self, payload: Dict[str, Any], upload: Optional[FileStorage]) -> Optional[str]:
        if upload is None or not upload.filename or not self.spec.image_field:
            return None
        url = storage.save_image(upload, self.spec.upload_folder)
        payload[self.spec.image_field] = url
        return url

    def _commit(self, stored: Optional[str]) -> None:
        """Commit, removing a freshly stored upload when the write fails"""
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            storage.delete(stored)
            raise

    def create(self, payload: Dict[str, Any], upload: Optional[FileStorage] = None):
        payload = dict(payload)
        data = parse_payload(self.spec.schema, payload)
        stored = self._with_upload(payload, upload)
        if stored:
            data = parse_payload(self.spec.schema, payload)
        if self.model is Partner and not data.logo:
            raise BadRequestError("Partner logo is required")

        item = self.model(**self.spec.to_fields(data))
        db.session.add(item)
        self._commit(stored)
        logger.info(f"{self.spec.label} created: {item.id}")
        return item

    def update(self, item_id, payload: Dict[str, Any], upload: Optional[FileStorage] = None):
        item = self.get(item_id)
        previous_image = getattr(item, self.spec.image_field) if self.spec.image_field else None
        merged = merge_update(self.spec.schema, item.to_dict(include_admin=True), payload)
        data = parse_payload(self.spec.schema, merged)
        stored = self._with_upload(merged, upload)
        if stored:
            data = parse_payload(self.spec.schema, merged)

        for name, value in self.spec.to_fields(data).items():
            setattr(item, name, value)
        self._commit(stored)

        if stored and previous_image != stored:
            storage.delete(previous_image)
        return item

    def delete(self, item_id) -> None:
        item = self.get(item_id)
        image = getattr(item, self.spec.image_field) if self.spec.image_field else None
        db.session.delete(item)
        db.session.commit()
        storage.delete(image)
        logger.info(f"{self.spec.label} deleted: {item_id}")

    def toggle_featured(self, item_id):
        item = self.get(item_id)
        column = self.spec.featured_column
        if column is None:
            raise BadRequestError(f"{self.spec.label} items cannot be featured")
        setattr(item, column, not getattr(item, column))
        db.session.commit()
        return item


products = CatalogService(CatalogSpec(
    model=Product,
    schema=ProductSchema,
    to_fields=_product_fields,
    label='Product',
    upload_folder='products',
    image_field='image',
    visible=lambda m: m.is_active.is_(True),
    featured_column='is_featured',
    name_column='name',
))

services = CatalogService(CatalogSpec(
    model=Service,
    schema=ServiceSchema,
    to_fields=_service_fields,
    label='Service',
    upload_folder='services',
    image_field=None,
    visible=lambda m: m.status != 'inactive',
    featured_column='featured',
    name_column='title',
))

projects = CatalogService(CatalogSpec(
    model=Project,
    schema=ProjectSchema,
    to_fields=_project_fields,
    label='Project',
    upload_folder='projects',
    image_field='image',
    visible=lambda m: true(),
    featured_column='featured',
    name_column='title',
))

partners = CatalogService(CatalogSpec(
    model=Partner,
    schema=PartnerSchema,
    to_fields=_partner_fields,
    label='Partner',
    upload_folder='partners',
    image_field='logo',
    visible=lambda m: m.is_active.is_(True),
    featured_column=None,
    name_column='name',
))
