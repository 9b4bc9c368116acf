from .category import Category
from .plant import Plant, PlantCategory, PLANT_STATUS_ACTIVE, PLANT_STATUS_INACTIVE

__all__ = [
    "Category",
    "Plant",
    "PlantCategory",
    "PLANT_STATUS_ACTIVE",
    "PLANT_STATUS_INACTIVE",
]
