import os

# Select the testing profile before the app and its settings are imported
os.environ.setdefault("APP_ENV", "testing")

import pytest

from repositories import reset_repositories


@pytest.fixture(autouse=True)
def reset_state():
    """Reset the ledger store before each test."""
    reset_repositories()
