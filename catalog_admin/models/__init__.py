from catalog_admin.models.category import Category
from catalog_admin.models.subcategory import Subcategory

__all__ = [
    "Category",
    "Subcategory",
]
