from __future__ import annotations

import math

from fastapi import Query

page_query = Query(default=1, ge=1)
limit_query = Query(default=10, ge=1, le=100)


def page_offset(page: int, limit: int) -> int:
    return (max(1, page) - 1) * max(1, limit)


def page_meta(*, total: int, page: int, limit: int) -> dict[str, int | bool]:
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "total": total,
        "current_page": page,
        "total_pages": total_pages,
        "has_more_pages": total_pages > page,
    }
