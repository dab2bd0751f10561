from fastapi import FastAPI, Request, Depends, Header, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import List, Optional
import logging
import structlog
import sys
import time
from contextlib import asynccontextmanager

from config import get_settings
from exceptions import LedgerError
from models import (
    Account,
    AccountCreateRequest,
    AccountSummary,
    DepositRequest,
    DepositResponse,
    ErrorResponse,
    HealthResponse,
    InterestRateRequest,
    Product,
    ProductCreateRequest,
    PurchaseRequest,
)
from repositories import (
    get_account_repository,
    get_interest_rate_repository,
    get_product_repository,
    get_purchase_repository,
    get_store,
)
from services import (
    AccountService,
    InterestService,
    ProductService,
    PurchaseService,
    parse_simulated_day,
)

PRODUCT_LIST_KEY = "List of products as defined above, including inventories, so"

settings = get_settings()

# Configure structured logging
logging.basicConfig(format="%(message)s", stream=sys.stdout, level=settings.log_level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    enabled=settings.rate_limit_enabled,
)

# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Ledger API", port=settings.port)
    yield
    # Shutdown
    logger.info("Shutting down Ledger API")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="In-memory ledger for accounts, deposits, products and simulated-day purchases",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=settings.allowed_methods,
    allow_headers=settings.allowed_headers,
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    # Log request
    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None
    )

    response = await call_next(request)

    # Log response
    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time=round(process_time, 4)
    )

    return response

# Dependency injection
def get_account_service(account_repo=Depends(get_account_repository)) -> AccountService:
    return AccountService(account_repo, get_store().lock)


def get_product_service(product_repo=Depends(get_product_repository)) -> ProductService:
    return ProductService(product_repo, get_store().lock)


def get_purchase_service(
    account_repo=Depends(get_account_repository),
    product_repo=Depends(get_product_repository),
    purchase_repo=Depends(get_purchase_repository)
) -> PurchaseService:
    return PurchaseService(account_repo, product_repo, purchase_repo, get_store().lock)


def get_interest_service(interest_repo=Depends(get_interest_rate_repository)) -> InterestService:
    return InterestService(interest_repo, get_store().lock)

# Error responses
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    404: {"model": ErrorResponse, "description": "Not found"},
}

# Accounts
@app.post(
    "/accounts",
    response_model=Account,
    status_code=status.HTTP_200_OK,
    summary="Create Account",
    responses={400: ERROR_RESPONSES[400]}
)
async def create_account(
    account_request: AccountCreateRequest,
    service: AccountService = Depends(get_account_service)
):
    return await service.create_account(account_request)


@app.get(
    "/accounts",
    response_model=List[AccountSummary],
    status_code=status.HTTP_201_CREATED,
    summary="List Accounts"
)
async def list_accounts(service: AccountService = Depends(get_account_service)):
    return await service.list_accounts()


@app.get(
    "/accounts/{account_id}",
    response_model=Account,
    summary="Get Account",
    responses={404: ERROR_RESPONSES[404]}
)
async def get_account(account_id: str, service: AccountService = Depends(get_account_service)):
    return await service.get_account(account_id)


@app.post(
    "/accounts/{account_id}/deposits",
    response_model=DepositResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Deposit Funds",
    description="Credit an account. The returned id identifies the deposit, not the account.",
    responses={400: ERROR_RESPONSES[400], 404: ERROR_RESPONSES[404]}
)
async def deposit(
    account_id: str,
    deposit_request: DepositRequest,
    service: AccountService = Depends(get_account_service)
):
    return await service.deposit(account_id, deposit_request)


@app.post(
    "/accounts/{account_id}/purchases",
    response_class=PlainTextResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Purchase Product",
    description="Buy one unit of a product. Purchases must not go back in simulated time.",
    responses={
        400: {"model": ErrorResponse, "description": "Unknown account/product or illegal simulated day"},
        409: {"model": ErrorResponse, "description": "Not enough stock or funds"},
    }
)
async def purchase(
    account_id: str,
    purchase_request: PurchaseRequest,
    simulated_day: Optional[str] = Header(None, alias="Simulated-Day"),
    service: PurchaseService = Depends(get_purchase_service)
):
    await service.purchase(
        account_id,
        purchase_request.productId,
        parse_simulated_day(simulated_day)
    )
    return PlainTextResponse("Success", status_code=status.HTTP_201_CREATED)

# Products
@app.post(
    "/products",
    response_model=Product,
    status_code=status.HTTP_201_CREATED,
    summary="Create Product",
    responses={400: ERROR_RESPONSES[400]}
)
async def create_product(
    product_request: ProductCreateRequest,
    service: ProductService = Depends(get_product_service)
):
    return await service.create_product(product_request)


@app.get("/products", summary="List Products")
async def list_products(service: ProductService = Depends(get_product_service)):
    products = await service.list_products()
    return {PRODUCT_LIST_KEY: [p.model_dump() for p in products]}


@app.get(
    "/products/{product_id}",
    response_model=Product,
    summary="Get Product",
    responses={404: ERROR_RESPONSES[404]}
)
async def get_product(product_id: str, service: ProductService = Depends(get_product_service)):
    return await service.get_product(product_id)

# Interest
@app.post(
    "/interest",
    response_class=PlainTextResponse,
    summary="Set Interest Rate",
    responses={400: ERROR_RESPONSES[400]}
)
async def set_interest_rate(
    rate_request: InterestRateRequest,
    service: InterestService = Depends(get_interest_service)
):
    await service.set_rate(rate_request.rate)
    return PlainTextResponse("Success", status_code=status.HTTP_200_OK)

# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health and get ledger statistics"
)
async def health_check(
    account_repo=Depends(get_account_repository),
    product_repo=Depends(get_product_repository),
    purchase_repo=Depends(get_purchase_repository)
):
    return HealthResponse(
        status="healthy",
        accounts_count=await account_repo.count(),
        products_count=await product_repo.count(),
        purchases_count=await purchase_repo.count()
    )

# Exception handlers
@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message).model_dump()
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(
        "Request validation failed",
        url=str(request.url),
        method=request.method,
        errors=[e.get("msg") for e in exc.errors()]
    )
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid Input").model_dump()
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = "Not Found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=message).model_dump()
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Internal Server Error").model_dump()
    )

# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    return {"message": settings.app_name, "docs": "/docs"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
