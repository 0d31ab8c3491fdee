# Overview: Default roles seeded into every new theater.

from .definitions import THEATER_PAGES, KIOSK_PAGES


THEATER_ADMIN_ROLE = "Theater Admin"
KIOSK_ROLE = "Kiosk Screen"

# role name -> (description, is_admin_role, pages granted)
DEFAULT_ROLES = {
    THEATER_ADMIN_ROLE: (
        "Full access to the theater back office",
        True,
        [page[0] for page in THEATER_PAGES],
    ),
    KIOSK_ROLE: (
        "Self-service kiosk screens",
        False,
        [page[0] for page in KIOSK_PAGES],
    ),
}
