from datetime import datetime

import pytest

from .factories import FOOD, FREELANCE, SALARY, TRANSPORT, make_tx


@pytest.fixture
def categories():
    return [SALARY, FREELANCE, FOOD, TRANSPORT]


@pytest.fixture
def october():
    return datetime(2026, 10, 1), datetime(2026, 10, 31, 23, 59, 59, 999999)


@pytest.fixture
def scenario_transactions():
    return [
        make_tx(1000, datetime(2026, 10, 1), "c-salary"),
        make_tx(-400, datetime(2026, 10, 1), "c-food"),
        make_tx(-100, datetime(2026, 10, 2), "c-food"),
    ]
