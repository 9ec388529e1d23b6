"""Page/limit normalization for history endpoints."""
import math
from typing import List, Optional, Tuple, Union

from .schemas import Message, MessagePage, PaginationInfo

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def _positive_int(value: Optional[Union[str, int]], default: int) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def normalize_pagination(
    page: Optional[Union[str, int]] = None,
    limit: Optional[Union[str, int]] = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> Tuple[int, int, int]:
    """Turn raw query values into (page, limit, skip).

    Missing, non-numeric or non-positive values fall back to the defaults.
    The limit is capped at max_limit.
    """
    page_number = _positive_int(page, DEFAULT_PAGE)
    limit_number = min(_positive_int(limit, default_limit), max_limit)
    skip = (page_number - 1) * limit_number
    return page_number, limit_number, skip


def build_pagination_response(
    items: List[Message], total: int, page: int, limit: int
) -> MessagePage:
    pages = math.ceil(total / limit) if total else 0
    return MessagePage(
        data=items,
        pagination=PaginationInfo(
            total=total,
            page=page,
            pages=pages,
            limit=limit,
            hasNextPage=page < pages,
            hasPrevPage=page > 1,
        ),
    )
