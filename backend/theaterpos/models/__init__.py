from .tenancy import Theater
from .catalog import Product
from .arrays import TheaterArrayDocument, RoleArray, TheaterUserArray, TheaterUserPin, PageAccessArray, QRCodeNameArray
from .stock import MonthlyStock

__all__ = [
    'Theater',
    'Product',
    'TheaterArrayDocument', 'RoleArray', 'TheaterUserArray', 'TheaterUserPin', 'PageAccessArray', 'QRCodeNameArray',
    'MonthlyStock',
]
