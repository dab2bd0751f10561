import asyncio
from typing import Dict, List, Optional

from config import get_settings
from models import Account, Product, Purchase

# Catalogue every fresh store starts with
SEED_PRODUCTS: List[dict] = [
    {
        "id": "solar",
        "title": "Solar Panel",
        "description": "Super duper Essent solar panel",
        "stock": 10,
        "price": 750,
    },
    {
        "id": "insulation",
        "title": "Insulation",
        "description": "Cavity wall insulation",
        "stock": 10,
        "price": 2500,
    },
    {
        "id": "heatpump",
        "title": "Awesome Heatpump",
        "description": "Hybrid heat pump",
        "stock": 3,
        "price": 5000,
    },
]


class LedgerStore:
    """Process-lifetime ledger state.

    Accounts and products are keyed by id and keep insertion order; purchases
    are an append-only log. All read-modify-write sequences must hold ``lock``.
    """

    def __init__(self, interest_rate: Optional[float] = None, seed: bool = True):
        self.accounts: Dict[str, Account] = {}
        self.products: Dict[str, Product] = {}
        self.purchases: List[Purchase] = []
        if interest_rate is None:
            interest_rate = get_settings().default_interest_rate
        self.interest_rate = interest_rate
        self.lock = asyncio.Lock()

        if seed:
            for item in SEED_PRODUCTS:
                product = Product(**item)
                self.products[product.id] = product
