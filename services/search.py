# services/search.py
"""
Keyword search over the public catalog and the awards

Terms match case-insensitively anywhere in a record's text columns. Records
whose name or title matches rank ahead of those matched only in the body.
Only what the public listings would show is searchable.
"""

import logging
from typing import Any, Dict

from sqlalchemy import case, or_

from core.database_models import db, Nomination, Product, Project, Service, parse_uuid
from core.exceptions import BadRequestError
from core.pagination import page_args, paginate
from services.awards import PUBLIC_STATUSES
from services.catalog import products, projects, services

logger = logging.getLogger(__name__)

SEARCH_TYPES = ('products', 'services', 'projects', 'awards')
MIN_QUERY_LENGTH = 2
MAX_LIMIT = 50

PRODUCT_SORTS = ('relevance', 'price-asc', 'price-desc', 'popular', 'recent')


def _flag(args, name: str) -> bool:
    value = args.get(name)
    return value is not None and value.lower() in ('true', '1')


def _price(args, name: str):
    raw = args.get(name)
    if raw in (None, ''):
        return None
    try:
        return float(raw)
    except ValueError:
        raise BadRequestError(f"{name} must be a number")


class SearchService:

    def term(self, args) -> str:
        term = (args.get('q') or '').strip()
        if len(term) < MIN_QUERY_LENGTH:
            raise BadRequestError(f"Search query must be at least {MIN_QUERY_LENGTH} characters")
        return term

    @staticmethod
    def _matching(model, title, columns, term: str):
        pattern = f"%{term}%"
        query = db.session.query(model).filter(or_(*(column.ilike(pattern) for column in columns)))
        rank = case((title.ilike(pattern), 0), else_=1)
        return query, rank

    def products_query(self, term: str, args):
        query, rank = self._matching(
            Product, Product.name,
            (Product.name, Product.short_description, Product.technical_description, Product.category),
            term,
        )
        query = query.filter(products.spec.visible(Product))
        if args.get('category'):
            query = query.filter(Product.category == args['category'])
        if _flag(args, 'featured'):
            query = query.filter(Product.is_featured.is_(True))
        min_price, max_price = _price(args, 'minPrice'), _price(args, 'maxPrice')
        if min_price is not None:
            query = query.filter(Product.price_amount >= min_price)
        if max_price is not None:
            query = query.filter(Product.price_amount <= max_price)

        sort = args.get('sort') or 'relevance'
        if sort not in PRODUCT_SORTS:
            raise BadRequestError(f"Invalid sort. Must be one of: {', '.join(PRODUCT_SORTS)}")
        if sort == 'price-asc':
            return query.order_by(Product.price_amount.asc())
        if sort == 'price-desc':
            return query.order_by(Product.price_amount.desc())
        if sort == 'popular':
            return query.order_by(Product.views.desc())
        if sort == 'recent':
            return query.order_by(Product.created_at.desc())
        return query.order_by(rank, Product.display_order.asc())

    def services_query(self, term: str, args):
        query, rank = self._matching(
            Service, Service.title,
            (Service.title, Service.description, Service.long_description, Service.category),
            term,
        )
        query = query.filter(services.spec.visible(Service))
        if args.get('category'):
            query = query.filter(Service.category == args['category'])
        if _flag(args, 'featured'):
            query = query.filter(Service.featured.is_(True))
        return query.order_by(rank, Service.display_order.asc())

    def projects_query(self, term: str, args):
        query, rank = self._matching(
            Project, Project.title,
            (Project.title, Project.description, Project.long_description, Project.category),
            term,
        )
        query = query.filter(projects.spec.visible(Project))
        if args.get('category'):
            query = query.filter(Project.category == args['category'])
        if args.get('status'):
            query = query.filter(Project.status == args['status'])
        if _flag(args, 'featured'):
            query = query.filter(Project.featured.is_(True))
        return query.order_by(rank, Project.display_order.asc())

    def awards_query(self, term: str, args):
        query, rank = self._matching(
            Nomination, Nomination.nominee_name,
            (Nomination.nominee_name, Nomination.nominee_title, Nomination.nominee_company,
             Nomination.nomination_reason, Nomination.achievements),
            term,
        )
        # A status outside the public set falls back to every public status
        status = args.get('status')
        if status in PUBLIC_STATUSES:
            query = query.filter(Nomination.status == status)
        else:
            query = query.filter(Nomination.status.in_(PUBLIC_STATUSES))
        if args.get('category'):
            query = query.filter(Nomination.category_id == parse_uuid(args['category'], 'Award category not found'))
        return query.order_by(rank, Nomination.votes.desc(), Nomination.display_order.asc())

    def _query(self, kind: str, term: str, args):
        return getattr(self, f"{kind}_query")(term, args)

    def search(self, kind: str, args) -> Dict[str, Any]:
        """One collection, paginated"""
        term = self.term(args)
        page, limit = page_args(args, default_limit=20, max_limit=MAX_LIMIT)
        result_page = paginate(self._query(kind, term, args), page, limit)
        logger.debug(f"Search {kind} for '{term}' matched {result_page.total}")
        return {
            'query': term,
            'results': [item.to_dict() for item in result_page.items],
            'pagination': result_page.meta(),
        }

    def search_all(self, args) -> Dict[str, Any]:
        """
        Search every collection at once, or a single one when ``type`` names it.
        ``limit`` caps the results returned per collection; the per-type filters
        only apply on the per-type endpoints.
        """
        term = self.term(args)
        kind = args.get('type') or 'all'
        if kind != 'all' and kind not in SEARCH_TYPES:
            raise BadRequestError(f"Invalid search type. Must be one of: all, {', '.join(SEARCH_TYPES)}")
        _, limit = page_args(args, default_limit=20, max_limit=MAX_LIMIT)

        kinds = SEARCH_TYPES if kind == 'all' else (kind,)
        results = {}
        for name in kinds:
            items = self._query(name, term, {}).limit(limit).all()
            results[name] = [item.to_dict() for item in items]
        return {
            'query': term,
            'totalResults': sum(len(items) for items in results.values()),
            'results': results,
        }


search_service = SearchService()
