# Overview: All theater back-office pages a role can be granted.
# Each page is defined as: (page key, display name, route, category)

from .categories import PageCategory


THEATER_PAGES = [
    ("Dashboard", "Dashboard", "/dashboard", PageCategory.DASHBOARD),
    ("Products", "Products", "/theater/:theaterId/products", PageCategory.PRODUCTS),
    ("Categories", "Categories", "/theater/:theaterId/categories", PageCategory.PRODUCTS),
    ("ProductTypes", "Product Types", "/theater/:theaterId/product-types", PageCategory.PRODUCTS),
    ("Orders", "Orders", "/theater/:theaterId/orders", PageCategory.ORDERS),
    ("POS", "POS Interface", "/theater/:theaterId/pos", PageCategory.ORDERS),
    ("Stock", "Stock Management", "/theater/:theaterId/stock", PageCategory.STOCK),
    ("QRCodeNames", "QR Code Names", "/theater/:theaterId/qr-code-names", PageCategory.QR),
    ("Settings", "Settings", "/theater/:theaterId/settings", PageCategory.SETTINGS),
    ("Roles", "Roles", "/theater/:theaterId/roles", PageCategory.ADMIN),
    ("Users", "Users", "/theater/:theaterId/users", PageCategory.USERS),
    ("Reports", "Reports", "/theater/:theaterId/reports", PageCategory.REPORTS),
]

KIOSK_PAGES = [
    ("KioskProductList", "Kiosk Product List", "/kiosk-products/:theaterId", PageCategory.KIOSK),
    ("KioskCart", "Kiosk Cart", "/kiosk-cart/:theaterId", PageCategory.KIOSK),
    ("KioskCheckout", "Kiosk Checkout", "/kiosk-checkout/:theaterId", PageCategory.KIOSK),
    ("KioskPayment", "Kiosk Payment", "/kiosk-payment/:theaterId", PageCategory.KIOSK),
    ("KioskViewCart", "Kiosk View Cart", "/kiosk-view-cart/:theaterId", PageCategory.KIOSK),
]

PAGE_DEFINITIONS = THEATER_PAGES + KIOSK_PAGES
