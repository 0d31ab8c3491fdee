# Overview: Page category constants for grouping pages in menus and admin screens.


class PageCategory:
    """Page categories for organization and UI display."""
    DASHBOARD = "dashboard"
    PRODUCTS = "products"
    ORDERS = "orders"
    CUSTOMERS = "customers"
    REPORTS = "reports"
    SETTINGS = "settings"
    ADMIN = "admin"
    QR = "qr"
    USERS = "users"
    STOCK = "stock"
    KIOSK = "kiosk"

    ALL = frozenset({
        DASHBOARD, PRODUCTS, ORDERS, CUSTOMERS, REPORTS,
        SETTINGS, ADMIN, QR, USERS, STOCK, KIOSK,
    })
