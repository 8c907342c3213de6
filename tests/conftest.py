"""Pytest configuration and fixtures."""

import os
import tempfile

import pytest
from fastapi.testclient import TestClient

from tracker.config import get_testing_config
from tracker.core.assembler import TimelineAssembler
from tracker.core.catalog import build_catalog, SERVICE_LEVEL_VARIANT
from tracker.core.resolver import StatusResolver
from tracker.factory import create_app
from tracker.models.core import ResolutionMode


@pytest.fixture
def catalog():
    """The default shipment-type catalog."""
    return build_catalog()


@pytest.fixture
def service_catalog():
    """The service-level catalog."""
    return build_catalog(SERVICE_LEVEL_VARIANT)


@pytest.fixture
def resolver():
    """A field-presence resolver."""
    return StatusResolver()


@pytest.fixture
def assembler(catalog):
    """An assembler with no default workflow."""
    return TimelineAssembler(catalog)


@pytest.fixture
def ordinal_assembler(catalog):
    """An assembler resolving in ordinal mode by default."""
    return TimelineAssembler(catalog, resolver=StatusResolver(mode=ResolutionMode.ORDINAL))


@pytest.fixture
def test_config():
    """Testing configuration backed by the in-memory record source."""
    return get_testing_config()


@pytest.fixture
def client(test_config):
    """Create a test client."""
    app = create_app(test_config)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def temp_db_url():
    """URL of a temporary SQLite database file."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)

    yield f"sqlite:///{db_path}"

    try:
        os.unlink(db_path)
    except OSError:
        pass
