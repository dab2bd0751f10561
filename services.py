import asyncio
import math
import re
import uuid
from typing import List, Optional
import structlog

from exceptions import (
    IllegalSequencingError,
    InsufficientResourcesError,
    InvalidInputError,
    NotFoundError,
)
from models import (
    Account,
    AccountCreateRequest,
    AccountSummary,
    DepositRequest,
    DepositResponse,
    Product,
    ProductCreateRequest,
    Purchase,
)
from repositories import (
    AccountRepository,
    InterestRateRepository,
    ProductRepository,
    PurchaseRepository,
)

logger = structlog.get_logger()

# Digits past the cap are dropped so int() stays under the interpreter's digit limit
_LEADING_INT = re.compile(r"^\s*([+-]?)0*(\d{1,4000})")


def parse_simulated_day(raw: Optional[str]) -> int:
    """Read the Simulated-Day header value.

    Only a leading integer counts ("12abc" -> 12, "3.9" -> 3); a missing or
    non-numeric value means day 0.
    """
    if raw is None:
        return 0
    match = _LEADING_INT.match(raw)
    if not match:
        return 0
    return int(match.group(1) + match.group(2))


async def _unique_id(repo) -> str:
    while True:
        candidate = str(uuid.uuid4())
        if not await repo.exists(candidate):
            return candidate


class AccountService:
    def __init__(self, account_repo: AccountRepository, lock: asyncio.Lock):
        self.account_repo = account_repo
        self.lock = lock

    async def create_account(self, request: AccountCreateRequest) -> Account:
        async with self.lock:
            account = Account(
                id=await _unique_id(self.account_repo),
                name=request.name,
                balance=0,
                latestPurchaseDay=0,
            )
            await self.account_repo.add(account)

        logger.info("Account created", account_id=account.id)
        return account

    async def list_accounts(self) -> List[AccountSummary]:
        accounts = await self.account_repo.list()
        return [
            AccountSummary(id=a.id, name=a.name, balance=a.balance)
            for a in accounts
        ]

    async def get_account(self, account_id: str) -> Account:
        account = await self.account_repo.get(account_id)
        if account is None:
            logger.warning("Account not found", account_id=account_id)
            raise NotFoundError()
        return account

    async def deposit(self, account_id: str, request: DepositRequest) -> DepositResponse:
        """Credit an account.

        The receipt carries a freshly generated id, not the account's id.
        """
        async with self.lock:
            account = await self.account_repo.get(account_id)
            if account is None:
                logger.warning("Deposit to unknown account", account_id=account_id)
                raise NotFoundError()

            old_balance = account.balance
            account.balance = old_balance + request.amount

        logger.info(
            "Deposit processed",
            account_id=account_id,
            amount=str(request.amount),
            old_balance=str(old_balance),
            new_balance=str(account.balance)
        )

        return DepositResponse(
            id=str(uuid.uuid4()),
            name=account.name,
            balance=account.balance,
        )


class ProductService:
    def __init__(self, product_repo: ProductRepository, lock: asyncio.Lock):
        self.product_repo = product_repo
        self.lock = lock

    async def list_products(self) -> List[Product]:
        return await self.product_repo.list()

    async def get_product(self, product_id: str) -> Product:
        product = await self.product_repo.get(product_id)
        if product is None:
            logger.warning("Product not found", product_id=product_id)
            raise NotFoundError()
        return product

    async def create_product(self, request: ProductCreateRequest) -> Product:
        async with self.lock:
            product = Product(
                id=await _unique_id(self.product_repo),
                title=request.title,
                description=request.description,
                stock=request.stock,
                price=request.price,
            )
            await self.product_repo.add(product)

        logger.info(
            "Product created",
            product_id=product.id,
            price=str(product.price),
            stock=product.stock
        )
        return product


class PurchaseService:
    def __init__(
        self,
        account_repo: AccountRepository,
        product_repo: ProductRepository,
        purchase_repo: PurchaseRepository,
        lock: asyncio.Lock
    ):
        self.account_repo = account_repo
        self.product_repo = product_repo
        self.purchase_repo = purchase_repo
        self.lock = lock

    async def purchase(self, account_id: str, product_id: str, simulated_day: int) -> Purchase:
        """Buy one unit of a product for an account on a simulated day.

        Checks run in a fixed order: unknown account or product, then a
        simulated day earlier than the account's latest purchase, then stock
        and funds. Nothing is mutated unless every check passes.
        """
        async with self.lock:
            account = await self.account_repo.get(account_id)
            product = await self.product_repo.get(product_id)

            if account is None or product is None:
                logger.warning(
                    "Purchase references unknown record",
                    account_id=account_id,
                    product_id=product_id,
                    account_found=account is not None,
                    product_found=product is not None
                )
                raise InvalidInputError("Invalid input")

            if simulated_day < account.latestPurchaseDay:
                logger.warning(
                    "Simulated day goes backwards",
                    account_id=account_id,
                    simulated_day=simulated_day,
                    latest_purchase_day=account.latestPurchaseDay
                )
                raise IllegalSequencingError()

            if product.stock <= 0 or account.balance < product.price:
                logger.warning(
                    "Not enough stock or funds",
                    account_id=account_id,
                    product_id=product_id,
                    stock=product.stock,
                    balance=str(account.balance),
                    price=str(product.price)
                )
                raise InsufficientResourcesError()

            product.stock -= 1
            account.balance -= product.price
            account.latestPurchaseDay = simulated_day
            purchase = Purchase(
                accountId=account_id,
                productId=product_id,
                simulatedDay=simulated_day,
            )
            await self.purchase_repo.append(purchase)

        logger.info(
            "Purchase completed",
            account_id=account_id,
            product_id=product_id,
            simulated_day=simulated_day,
            new_balance=str(account.balance),
            remaining_stock=product.stock
        )
        return purchase


class InterestService:
    def __init__(self, interest_repo: InterestRateRepository, lock: asyncio.Lock):
        self.interest_repo = interest_repo
        self.lock = lock

    async def get_rate(self) -> float:
        return await self.interest_repo.get_rate()

    async def set_rate(self, rate: float) -> None:
        if rate <= 0 or not math.isfinite(rate):
            logger.warning("Rejected interest rate", rate=rate)
            raise InvalidInputError()

        # Stored only; no balance accrues interest
        async with self.lock:
            old_rate = await self.interest_repo.get_rate()
            await self.interest_repo.set_rate(rate)

        logger.info("Interest rate updated", old_rate=old_rate, new_rate=rate)
