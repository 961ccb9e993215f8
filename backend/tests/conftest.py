"""
Shared test fixtures: small datasets and a scripted stand-in for the
language model.
"""

from typing import Callable, Optional, Union

import pytest

from core.dataset import Dataset


MONTHS = ["2024-01", "2024-02", "2024-03", "2024-04"]
REVENUE = {
    "2024-01": {"North": 300, "South": 200, "East": 100},
    "2024-02": {"North": 320, "South": 210, "East": 110},
    "2024-03": {"North": 350, "South": 230, "East": 120},
    "2024-04": {"North": 400, "South": 250, "East": 130},
}


@pytest.fixture
def sales_dataset() -> Dataset:
    """12 rows: 3 regions x 4 months, revenue total 2720."""
    rows = [
        {"month": month, "region": region, "revenue": str(value)}
        for month in MONTHS
        for region, value in REVENUE[month].items()
    ]
    return Dataset(
        name="sales.csv",
        headers=["month", "region", "revenue"],
        rows=rows,
        column_types={"month": "string", "region": "string", "revenue": "number"},
    )


@pytest.fixture
def orders_dataset() -> Dataset:
    rows = [
        {"store": "S1", "revenue": "100"},
        {"store": "S1", "revenue": "50"},
        {"store": "S2", "revenue": "80"},
        {"store": "S3", "revenue": "30"},
        {"store": "S2", "revenue": "20"},
    ]
    return Dataset(name="orders.csv", headers=["store", "revenue"], rows=rows)


@pytest.fixture
def stores_dataset() -> Dataset:
    rows = [
        {"store": "S1", "city": "Oslo"},
        {"store": "S2", "city": "Bergen"},
        {"store": "S3", "city": "Oslo"},
        {"store": "S4", "city": "Tromso"},
    ]
    return Dataset(name="stores.csv", headers=["store", "city"], rows=rows)


Reply = Union[str, Exception, Callable[[str, str], str]]


class ScriptedModel:
    """
    Async callable matching the model-call signature.

    Replies are looked up by exact system prompt; unmatched calls get
    `default`. Every call is recorded.
    """

    def __init__(self, replies: Optional[dict[str, Reply]] = None, default: Reply = ""):
        self.replies = replies or {}
        self.default = default
        self.calls: list[tuple[str, str, Optional[str]]] = []

    async def __call__(self, system: str, user: str, model: Optional[str] = None) -> str:
        self.calls.append((system, user, model))
        reply = self.replies.get(system, self.default)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(system, user)
        return reply

    def calls_for(self, system: str) -> list[tuple[str, str, Optional[str]]]:
        return [c for c in self.calls if c[0] == system]


@pytest.fixture
def scripted_model() -> Callable[..., ScriptedModel]:
    return ScriptedModel
