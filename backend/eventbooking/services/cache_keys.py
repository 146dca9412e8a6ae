"""
Cache key layout, one namespace per logical query.

  events:list:{page}:{page_size}:{search}:{category}   paginated listings
  events:byId:{id}                                     single event
  categories:all / tags:all                            lookup lists

Every listing variant shares the ``events:list:`` prefix so a single
pattern purge clears all of them. Free-text components are
percent-encoded, so a ``:`` typed into a search cannot shift into the
next field.
"""

from typing import Optional
from urllib.parse import quote

EVENT_LIST_PREFIX = "events:list:"
EVENT_DETAIL_PREFIX = "events:byId:"
CATEGORIES_ALL = "categories:all"
TAGS_ALL = "tags:all"


def _component(value: Optional[str]) -> str:
    return quote(value or "", safe="")


def event_list_key(
    page: int,
    page_size: int,
    search: Optional[str] = None,
    category: Optional[str] = None,
) -> str:
    return f"{EVENT_LIST_PREFIX}{page}:{page_size}:{_component(search)}:{_component(category)}"


def event_detail_key(event_id: int) -> str:
    return f"{EVENT_DETAIL_PREFIX}{event_id}"
