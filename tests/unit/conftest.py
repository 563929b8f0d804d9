import argparse
import itertools
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastmcp.server import FastMCP

from mcp_journey_builder.journey_model import Journey
from mcp_journey_builder.server import create_mcp_server
from mcp_journey_builder.static import KYC_ONBOARDING_JOURNEY
from mcp_journey_builder.store import JourneyStore

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def clean_env():
    """Fixture to clean environment variables before each test."""
    env_vars = [
        "JOURNEY_BUILDER_TRANSPORT",
        "JOURNEY_BUILDER_MCP_SERVER_HOST",
        "JOURNEY_BUILDER_MCP_SERVER_PORT",
        "JOURNEY_BUILDER_MCP_SERVER_PATH",
        "JOURNEY_BUILDER_MCP_SERVER_ALLOW_ORIGINS",
        "JOURNEY_BUILDER_MCP_SERVER_ALLOWED_HOSTS",
        "JOURNEY_BUILDER_NAMESPACE",
    ]
    # Store original values
    original_values = {}
    for var in env_vars:
        if var in os.environ:
            original_values[var] = os.environ[var]
            del os.environ[var]

    yield

    # Remove anything the test set, then restore original values
    for var in env_vars:
        os.environ.pop(var, None)
    for var, value in original_values.items():
        os.environ[var] = value


@pytest.fixture
def args_factory():
    """Factory fixture to create argparse.Namespace objects with default None values."""

    def _create_args(**kwargs):
        defaults = {
            "transport": None,
            "server_host": None,
            "server_port": None,
            "server_path": None,
            "allow_origins": None,
            "allowed_hosts": None,
            "namespace": None,
        }
        defaults.update(kwargs)
        return argparse.Namespace(**defaults)

    return _create_args


@pytest.fixture
def clock():
    "A clock that moves forward one second on every call."
    ticks = itertools.count()
    return lambda: EPOCH + timedelta(seconds=next(ticks))


@pytest.fixture
def id_factory():
    "Sequential identifiers: id-1, id-2, ..."
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def store(clock, id_factory) -> JourneyStore:
    "An empty editing session with a deterministic clock and ids."
    return JourneyStore(clock=clock, id_factory=id_factory)


@pytest.fixture
def abc_store(store: JourneyStore) -> JourneyStore:
    "Nodes A (input), B (loader) and C (dead_end), no edges."
    store.add_node({"id": "A", "name": "A", "type": "input"})
    store.add_node({"id": "B", "name": "B", "type": "loader"})
    store.add_node({"id": "C", "name": "C", "type": "dead_end"})
    return store


@pytest.fixture
def kyc_journey_dict() -> dict[str, Any]:
    return KYC_ONBOARDING_JOURNEY


@pytest.fixture
def kyc_journey(kyc_journey_dict: dict[str, Any]) -> Journey:
    return Journey.model_validate(kyc_journey_dict)


@pytest.fixture
def kyc_store(kyc_journey: Journey, clock, id_factory) -> JourneyStore:
    return JourneyStore(kyc_journey, clock=clock, id_factory=id_factory)


@pytest.fixture
def test_mcp_server() -> FastMCP:
    """Create an MCP server instance for testing."""
    return create_mcp_server()
