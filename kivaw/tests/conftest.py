"""Pytest configuration and shared fixtures."""

import os

# Set test environment variables before any imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_kivaw.db"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["RSS_INGEST_ENABLED"] = "false"
os.environ["PROVIDER_SYNC_ENABLED"] = "false"

import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"
