from __future__ import annotations

import math
from typing import Any

from ..config import settings


def page_window(page: int, limit: int | None) -> tuple[int, int, int, int]:
    """Clamp paging params and return (page, limit, first_row, last_row)."""
    page = max(page, 1)
    limit = min(max(limit or settings.default_page_size, 1), settings.max_page_size)
    start = (page - 1) * limit
    return page, limit, start, start + limit - 1


def paginated(key: str, items: list[Any], total: int | None, page: int, limit: int) -> dict[str, Any]:
    total = total if total is not None else len(items)
    return {
        key: items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }
