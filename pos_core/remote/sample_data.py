# =============================================================================
# pos_core/remote/sample_data.py
# Static sample data for demo mode and index-error fallback
# =============================================================================

import copy
from typing import Any, Dict, List

# (id, name, category, price)
_MENU = [
    ("tapsilog_001", "Tapsilog", "silog_meals", 75),
    ("bangsilog_002", "Bangsilog", "silog_meals", 69),
    ("porksilog_003", "Porkchopsilog", "silog_meals", 69),
    ("tocilog_004", "Tocilog", "silog_meals", 65),
    ("chicksilog_005", "Chicksilog", "silog_meals", 69),
    ("baconsilog_006", "Baconsilog", "silog_meals", 65),
    ("lechonsilog_007", "Lechonsilog", "silog_meals", 69),
    ("bbq_rice_008", "BBQ with Rice", "silog_meals", 60),
    ("hotsilog_012", "Hotsilog", "silog_meals", 40),
    ("longsilog_013", "Longsilog", "silog_meals", 55),
    ("fries_cup_016", "Fries in a Cup", "snacks", 50),
    ("nachos_017", "Nachos", "snacks", 50),
    ("cheese_sticks_018", "Cheese Sticks", "snacks", 50),
    ("corndog_classic_019", "Classic Corndog", "snacks", 60),
    ("cucumber_lemonade_s_024", "Cucumber Lemonade (Small)", "drinks", 25),
    ("lemon_ice_tea_s_026", "Lemon Ice Tea (Small)", "drinks", 25),
    ("soft_drink_033", "Coke", "drinks", 22),
    ("mineral_water_036", "Mineral Water", "drinks", 12),
]

_ADDONS = [
    ("addon_extra_rice", "Extra Rice", "rice", 15),
    ("addon_extra_java_rice", "Extra Java Rice", "rice", 15),
    ("addon_extra_egg", "Extra Egg", "extra", 10),
    ("addon_extra_hotdog", "Extra Hotdog", "extra", 15),
    ("addon_extra_spam", "Extra Spam", "extra", 20),
]

TABLE_COUNT = 8

COLLECTIONS = ("users", "tables", "menu", "addons", "orders")


def _build() -> Dict[str, List[Dict[str, Any]]]:
    menu = [
        {
            "id": item_id,
            "name": name,
            "category": category,
            "price": price,
            "imageUrl": "",
            "status": "available",
            "customizable": category == "silog_meals",
            "addons": [],
        }
        for item_id, name, category, price in _MENU
    ]
    addons = [
        {
            "id": addon_id,
            "name": name,
            "category": category,
            "price": price,
            "available": True,
            "linkedTo": ["silog_meals"],
        }
        for addon_id, name, category, price in _ADDONS
    ]
    tables = [
        {"id": f"table_{n}", "number": n, "active": True}
        for n in range(1, TABLE_COUNT + 1)
    ]
    return {"users": [], "tables": tables, "menu": menu, "addons": addons, "orders": []}


_SAMPLE = _build()


def sample_collection(name: str) -> List[Dict[str, Any]]:
    """Fresh copy of the sample records for one collection."""
    return copy.deepcopy(_SAMPLE.get(name, []))


def seed_collections() -> Dict[str, List[Dict[str, Any]]]:
    """Fresh copy of every sample collection."""
    return {name: sample_collection(name) for name in COLLECTIONS}
