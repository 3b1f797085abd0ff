"""
Pytest configuration and shared fixtures
"""

import pytest

from projopt.core.context import OptimizationContext


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio to only use asyncio backend."""
    return "asyncio"


@pytest.fixture
def wide_fields():
    """Twelve flat field names; id, name and status rank highest"""
    return [
        "id",
        "name",
        "email",
        "status",
        "created_at",
        "bio",
        "avatar",
        "address",
        "phone",
        "notes",
        "tags",
        "score",
    ]


@pytest.fixture
def wide_projection(wide_fields):
    """Inclusion projection over twelve fields"""
    return {name: 1 for name in wide_fields}


@pytest.fixture
def lazy_context():
    """Context for a caller that can fetch fields on demand"""
    return OptimizationContext.from_dict({"supportsLazyLoading": True, "performanceThreshold": 5})


@pytest.fixture
def orders_query():
    """Query over orders with three predicates, least selective first"""
    return {
        "source": "orders",
        "filter": [
            {"column": "amount", "operator": ">", "value": 100},
            {"column": "city", "operator": "!=", "value": "LA"},
            {"column": "status", "operator": "=", "value": "open"},
        ],
    }
