from pydantic import BaseModel, Field, field_validator
from typing import Union
from datetime import datetime
import math


# Money keeps the JSON shape it arrived with: 1000 stays 1000, 12.5 stays 12.5
Amount = Union[int, float]


def _require_positive(v, field_name: str):
    if v <= 0 or (isinstance(v, float) and not math.isfinite(v)):
        raise ValueError(f"{field_name} must be a positive number")
    return v


# Domain records

class Account(BaseModel):
    id: str = Field(..., description="Account identifier")
    name: str = Field(..., description="Account holder display name")
    balance: Amount = Field(0, description="Current balance")
    latestPurchaseDay: int = Field(0, description="Simulated day of the latest purchase")


class Product(BaseModel):
    id: str = Field(..., description="Product identifier")
    title: str
    description: str
    stock: int = Field(..., ge=0, description="Units left in stock")
    price: Amount = Field(..., description="Unit price")


class Purchase(BaseModel):
    accountId: str
    productId: str
    simulatedDay: int


# Requests

class AccountCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Account holder display name")


class DepositRequest(BaseModel):
    amount: Amount = Field(..., description="Amount to deposit, must be positive")

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        return _require_positive(v, 'Amount')


class PurchaseRequest(BaseModel):
    productId: str = Field(..., description="Identifier of the product to buy")


class ProductCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: Amount = Field(..., description="Unit price, must be positive")
    stock: int = Field(..., gt=0, description="Initial stock")

    @field_validator('price')
    @classmethod
    def validate_price(cls, v):
        return _require_positive(v, 'Price')


class InterestRateRequest(BaseModel):
    rate: float = Field(..., description="New interest rate, must be positive")

    @field_validator('rate')
    @classmethod
    def validate_rate(cls, v):
        return _require_positive(v, 'Rate')


# Responses

class AccountSummary(BaseModel):
    id: str
    name: str
    balance: Amount


class DepositResponse(BaseModel):
    id: str = Field(..., description="Deposit receipt identifier")
    name: str
    balance: Amount


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=datetime.now)
    accounts_count: int = Field(..., description="Number of accounts in system")
    products_count: int = Field(..., description="Number of products in catalogue")
    purchases_count: int = Field(..., description="Total purchases recorded")
