# Overview: Page permission catalog package.

from .categories import PageCategory
from .definitions import PAGE_DEFINITIONS, THEATER_PAGES, KIOSK_PAGES
from .roles import DEFAULT_ROLES, THEATER_ADMIN_ROLE, KIOSK_ROLE
from .helpers import (
    get_pages_by_category,
    get_page_definition,
    build_permission_entry,
)

__all__ = [
    "PageCategory",
    "PAGE_DEFINITIONS",
    "THEATER_PAGES",
    "KIOSK_PAGES",
    "DEFAULT_ROLES",
    "THEATER_ADMIN_ROLE",
    "KIOSK_ROLE",
    "get_pages_by_category",
    "get_page_definition",
    "build_permission_entry",
]
