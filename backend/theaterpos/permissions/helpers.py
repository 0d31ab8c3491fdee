# Overview: Utility functions for page lookups and permission-entry construction.

from .definitions import PAGE_DEFINITIONS


def get_pages_by_category(category):
    """Get all pages in a category."""
    return [page for page in PAGE_DEFINITIONS if page[3] == category]


def get_page_definition(page_key):
    """Get full definition for a page key."""
    for page in PAGE_DEFINITIONS:
        if page[0] == page_key:
            return {
                "page": page[0],
                "page_name": page[1],
                "route": page[2],
                "category": page[3],
            }
    return None


def build_permission_entry(page_key, has_access=True):
    """Permission entry for a role, filled from the page catalog when the key is known."""
    definition = get_page_definition(page_key)
    return {
        "page": page_key,
        "page_name": definition["page_name"] if definition else page_key,
        "route": definition["route"] if definition else "",
        "has_access": has_access,
    }
