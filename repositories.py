from abc import ABC, abstractmethod
from typing import List, Optional
from models import Account, Product, Purchase
from storage import LedgerStore


class AccountRepository(ABC):
    @abstractmethod
    async def add(self, account: Account) -> None:
        """Store a new account."""
        pass

    @abstractmethod
    async def get(self, account_id: str) -> Optional[Account]:
        """Get account by id. Returns None if it doesn't exist."""
        pass

    @abstractmethod
    async def list(self) -> List[Account]:
        """Get all accounts in creation order."""
        pass

    @abstractmethod
    async def exists(self, account_id: str) -> bool:
        """Check if account exists."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Get total number of accounts."""
        pass


class ProductRepository(ABC):
    @abstractmethod
    async def add(self, product: Product) -> None:
        """Store a new product."""
        pass

    @abstractmethod
    async def get(self, product_id: str) -> Optional[Product]:
        """Get product by id. Returns None if it doesn't exist."""
        pass

    @abstractmethod
    async def list(self) -> List[Product]:
        """Get all products in catalogue order."""
        pass

    @abstractmethod
    async def exists(self, product_id: str) -> bool:
        """Check if product exists."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Get total number of products."""
        pass


class PurchaseRepository(ABC):
    @abstractmethod
    async def append(self, purchase: Purchase) -> None:
        """Append a purchase to the log."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Get total number of purchases."""
        pass


class InterestRateRepository(ABC):
    @abstractmethod
    async def get_rate(self) -> float:
        pass

    @abstractmethod
    async def set_rate(self, rate: float) -> None:
        pass


class InMemoryAccountRepository(AccountRepository):
    def __init__(self, store: LedgerStore):
        self.store = store

    async def add(self, account: Account) -> None:
        if account.id in self.store.accounts:
            raise ValueError(f"Account {account.id} already exists")
        self.store.accounts[account.id] = account

    async def get(self, account_id: str) -> Optional[Account]:
        return self.store.accounts.get(account_id)

    async def list(self) -> List[Account]:
        return list(self.store.accounts.values())

    async def exists(self, account_id: str) -> bool:
        return account_id in self.store.accounts

    async def count(self) -> int:
        return len(self.store.accounts)


class InMemoryProductRepository(ProductRepository):
    def __init__(self, store: LedgerStore):
        self.store = store

    async def add(self, product: Product) -> None:
        if product.id in self.store.products:
            raise ValueError(f"Product {product.id} already exists")
        self.store.products[product.id] = product

    async def get(self, product_id: str) -> Optional[Product]:
        return self.store.products.get(product_id)

    async def list(self) -> List[Product]:
        return list(self.store.products.values())

    async def exists(self, product_id: str) -> bool:
        return product_id in self.store.products

    async def count(self) -> int:
        return len(self.store.products)


class InMemoryPurchaseRepository(PurchaseRepository):
    def __init__(self, store: LedgerStore):
        self.store = store

    async def append(self, purchase: Purchase) -> None:
        self.store.purchases.append(purchase)

    async def count(self) -> int:
        return len(self.store.purchases)


class InMemoryInterestRateRepository(InterestRateRepository):
    def __init__(self, store: LedgerStore):
        self.store = store

    async def get_rate(self) -> float:
        return self.store.interest_rate

    async def set_rate(self, rate: float) -> None:
        self.store.interest_rate = rate


def _new_store() -> LedgerStore:
    return LedgerStore()


# Shared store for the running process; handlers reach it through the getters below
_store = _new_store()


def get_store() -> LedgerStore:
    return _store


def get_account_repository() -> AccountRepository:
    return InMemoryAccountRepository(_store)


def get_product_repository() -> ProductRepository:
    return InMemoryProductRepository(_store)


def get_purchase_repository() -> PurchaseRepository:
    return InMemoryPurchaseRepository(_store)


def get_interest_rate_repository() -> InterestRateRepository:
    return InMemoryInterestRateRepository(_store)


# For tests
def reset_repositories():
    """Reset the store to its initial seeded state (for testing only)."""
    global _store
    _store = _new_store()
