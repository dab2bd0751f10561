"""Ledger error kinds, each mapped to the HTTP status it is reported with"""


class LedgerError(Exception):
    """Base exception for ledger operations"""

    status_code: int = 500
    message: str = "Internal Server Error"

    def __init__(self, message: str = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidInputError(LedgerError):
    """Request field is missing, malformed, out of range, or references an unknown record"""

    status_code = 400
    message = "Invalid Input"


class NotFoundError(LedgerError):
    """Referenced account or product does not exist"""

    status_code = 404
    message = "Not Found"


class IllegalSequencingError(LedgerError):
    """Simulated day is earlier than the account's latest purchase day"""

    status_code = 400
    message = "Simulated day illegal"


class InsufficientResourcesError(LedgerError):
    """Product is out of stock or the account cannot cover the price"""

    status_code = 409
    message = "Not enough stock or funds"
