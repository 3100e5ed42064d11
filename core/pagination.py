# core/pagination.py
"""
Page/limit pagination for list endpoints
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass
class Page:
    items: List[Any]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def meta(self) -> Dict[str, Any]:
        return {
            'currentPage': self.page,
            'totalPages': self.total_pages,
            'totalItems': self.total,
            'hasNextPage': self.page < self.total_pages,
            'hasPrevPage': self.page > 1,
        }


def page_args(args, default_limit: int = 20, max_limit: int = 100):
    """Read ``page`` and ``limit`` from query args, clamped to sane bounds"""
    page = args.get('page', 1, type=int) or 1
    limit = args.get('limit', default_limit, type=int) or default_limit
    return max(page, 1), min(max(limit, 1), max_limit)


def paginate(query, page: int, limit: int) -> Page:
    """Apply offset/limit to an ordered SQLAlchemy query"""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, page=page, limit=limit, total=total)
