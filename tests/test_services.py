import asyncio

import pytest

from exceptions import (
    IllegalSequencingError,
    InsufficientResourcesError,
    InvalidInputError,
    NotFoundError,
)
from models import AccountCreateRequest, DepositRequest, ProductCreateRequest
from repositories import (
    InMemoryAccountRepository,
    InMemoryInterestRateRepository,
    InMemoryProductRepository,
    InMemoryPurchaseRepository,
)
from services import (
    AccountService,
    InterestService,
    ProductService,
    PurchaseService,
    parse_simulated_day,
)
from storage import LedgerStore, SEED_PRODUCTS


@pytest.fixture
def store():
    return LedgerStore()


@pytest.fixture
def accounts(store):
    return AccountService(InMemoryAccountRepository(store), store.lock)


@pytest.fixture
def products(store):
    return ProductService(InMemoryProductRepository(store), store.lock)


@pytest.fixture
def purchases(store):
    return PurchaseService(
        InMemoryAccountRepository(store),
        InMemoryProductRepository(store),
        InMemoryPurchaseRepository(store),
        store.lock
    )


@pytest.fixture
def interest(store):
    return InterestService(InMemoryInterestRateRepository(store), store.lock)


class TestSimulatedDayParsing:
    """Test the Simulated-Day header parsing."""

    @pytest.mark.parametrize("raw, expected", [
        (None, 0),
        ("", 0),
        ("7", 7),
        (" 12", 12),
        ("3.9", 3),
        ("12abc", 12),
        ("-2", -2),
        ("+4", 4),
        ("abc", 0),
        ("day 5", 0),
        ("9" * 5000, int("9" * 4000)),
        ("0" * 5000 + "7", 7),
        ("-000003", -3),
    ])
    def test_parse(self, raw, expected):
        assert parse_simulated_day(raw) == expected


class TestStore:
    """Test the store's initial state."""

    def test_seeded(self, store):
        assert list(store.products) == [p["id"] for p in SEED_PRODUCTS]
        assert store.accounts == {}
        assert store.purchases == []
        assert store.interest_rate == 0.08

    def test_unseeded(self):
        assert LedgerStore(seed=False).products == {}

    def test_seed_products_are_copies(self, store):
        store.products["solar"].stock = 0

        assert LedgerStore().products["solar"].stock == 10


class TestAccountService:
    """Test account operations without HTTP."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, accounts):
        account = await accounts.create_account(AccountCreateRequest(name="Bob"))

        fetched = await accounts.get_account(account.id)
        assert fetched.name == "Bob"
        assert fetched.balance == 0

    @pytest.mark.asyncio
    async def test_get_missing(self, accounts):
        with pytest.raises(NotFoundError):
            await accounts.get_account("missing")

    @pytest.mark.asyncio
    async def test_deposit_missing_account(self, accounts):
        with pytest.raises(NotFoundError):
            await accounts.deposit("missing", DepositRequest(amount=5))

    @pytest.mark.asyncio
    async def test_list_is_summary(self, accounts):
        await accounts.create_account(AccountCreateRequest(name="Bob"))

        summaries = await accounts.list_accounts()

        assert len(summaries) == 1
        assert set(summaries[0].model_dump()) == {"id", "name", "balance"}


class TestProductService:
    """Test product operations without HTTP."""

    @pytest.mark.asyncio
    async def test_create_appends(self, products, store):
        product = await products.create_product(ProductCreateRequest(
            title="Battery", description="Home battery", price=3000, stock=2
        ))

        assert list(store.products)[-1] == product.id
        assert (await products.get_product(product.id)).stock == 2

    @pytest.mark.asyncio
    async def test_get_missing(self, products):
        with pytest.raises(NotFoundError):
            await products.get_product("missing")


class TestPurchaseService:
    """Test purchase rules without HTTP."""

    async def _funded(self, accounts, amount):
        account = await accounts.create_account(AccountCreateRequest(name="Carol"))
        await accounts.deposit(account.id, DepositRequest(amount=amount))
        return account.id

    @pytest.mark.asyncio
    async def test_purchase_commits(self, accounts, purchases, store):
        account_id = await self._funded(accounts, 3000)

        purchase = await purchases.purchase(account_id, "insulation", 2)

        assert purchase.simulatedDay == 2
        assert store.accounts[account_id].balance == 500
        assert store.accounts[account_id].latestPurchaseDay == 2
        assert store.products["insulation"].stock == 9
        assert store.purchases == [purchase]

    @pytest.mark.asyncio
    async def test_unknown_records_are_invalid_input(self, accounts, purchases):
        account_id = await self._funded(accounts, 3000)

        with pytest.raises(InvalidInputError):
            await purchases.purchase("missing", "solar", 1)
        with pytest.raises(InvalidInputError):
            await purchases.purchase(account_id, "missing", 1)

    @pytest.mark.asyncio
    async def test_day_regression(self, accounts, purchases, store):
        account_id = await self._funded(accounts, 3000)
        await purchases.purchase(account_id, "solar", 8)

        with pytest.raises(IllegalSequencingError):
            await purchases.purchase(account_id, "solar", 7)
        assert len(store.purchases) == 1

    @pytest.mark.asyncio
    async def test_day_is_per_account(self, accounts, purchases):
        first = await self._funded(accounts, 3000)
        second = await self._funded(accounts, 3000)
        await purchases.purchase(first, "solar", 8)

        await purchases.purchase(second, "solar", 1)

    @pytest.mark.asyncio
    async def test_insufficient(self, accounts, purchases, store):
        account_id = await self._funded(accounts, 100)

        with pytest.raises(InsufficientResourcesError):
            await purchases.purchase(account_id, "solar", 1)
        assert store.accounts[account_id].balance == 100
        assert store.products["solar"].stock == 10


class YieldingAccountRepository(InMemoryAccountRepository):
    """Counts purchases that have started reading state."""

    def __init__(self, store, tracker):
        super().__init__(store)
        self.tracker = tracker

    async def get(self, account_id):
        self.tracker["inside"] += 1
        self.tracker["peak"] = max(self.tracker["peak"], self.tracker["inside"])
        return await super().get(account_id)


class YieldingProductRepository(InMemoryProductRepository):
    """Hands control back to the event loop before answering."""

    def __init__(self, store, tracker):
        super().__init__(store)
        self.tracker = tracker

    async def get(self, product_id):
        await asyncio.sleep(0)
        self.tracker["inside"] -= 1
        return await super().get(product_id)


class TestPurchaseLocking:
    """Test purchases are serialized by the store lock."""

    @pytest.mark.asyncio
    async def test_purchases_do_not_overlap(self, store, accounts):
        account = await accounts.create_account(AccountCreateRequest(name="Erin"))
        await accounts.deposit(account.id, DepositRequest(amount=1000000))

        tracker = {"inside": 0, "peak": 0}
        service = PurchaseService(
            YieldingAccountRepository(store, tracker),
            YieldingProductRepository(store, tracker),
            InMemoryPurchaseRepository(store),
            store.lock
        )

        results = await asyncio.gather(
            *[service.purchase(account.id, "heatpump", 1) for _ in range(6)],
            return_exceptions=True
        )

        assert tracker["peak"] == 1
        assert sum(1 for r in results if isinstance(r, InsufficientResourcesError)) == 3
        assert store.products["heatpump"].stock == 0
        assert len(store.purchases) == 3


class TestInterestService:
    """Test the interest rate setting without HTTP."""

    @pytest.mark.asyncio
    async def test_set_rate(self, interest):
        await interest.set_rate(0.1)

        assert await interest.get_rate() == 0.1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rate", [0, -1, float("nan"), float("inf")])
    async def test_rejects_non_positive(self, interest, rate):
        with pytest.raises(InvalidInputError):
            await interest.set_rate(rate)
        assert await interest.get_rate() == 0.08
