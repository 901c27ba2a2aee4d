"""Pytest configuration shared by unit and integration tests."""

import pytest


@pytest.fixture(scope="module")
def anyio_backend():
    """Run async parser tests on asyncio; the evaluator sessions are asyncio-only."""
    return "asyncio"
