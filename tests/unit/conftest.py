"""
Global fixtures for all unit tests.

This conftest provides autouse fixtures that keep tests hermetic:
- Environment variable isolation (no FIRESCHEMA_* settings leak in)
- Settings cache, store singleton and package logging reset around every test

These fixtures apply automatically to ALL tests in tests/unit/.
"""

import sys
from pathlib import Path

import pytest

# Shared record types live in tests/fixtures
sys.path.insert(0, str(Path(__file__).parent.parent))

from fireschema.common.config import get_settings
from fireschema.common.logger import reset_logging
from fireschema.stores import reset_store
from fireschema.stores.memory import MemoryStore

from fixtures.models import PeopleCollection, SampleCollection, SampleModel


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Isolate tests from real store configuration.

    Removes every FIRESCHEMA_* variable and the Firestore emulator host so
    settings always start from their defaults.
    """
    import os

    for name in list(os.environ):
        if name.startswith("FIRESCHEMA_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("FIRESTORE_EMULATOR_HOST", raising=False)

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    reset_store()
    reset_logging()


@pytest.fixture
def memory_store():
    """Fresh in-memory store."""
    store = MemoryStore()
    yield store
    store.close()


@pytest.fixture
def samples(memory_store):
    """SampleModel collection accessor over the memory store."""
    return SampleCollection(memory_store, "samples")


@pytest.fixture
def people(memory_store):
    """Person collection accessor over the memory store."""
    return PeopleCollection(memory_store, "people")


@pytest.fixture
def seeded_samples(samples):
    """Collection with three documents whose values are 700, 701, 701."""
    samples.set("a", SampleModel(name="alpha", value=700, tags=["x"]))
    samples.set("b", SampleModel(name="beta", value=701, tags=["y", "z"]))
    samples.set("c", SampleModel(name="gamma", value=701, tags=["x", "z"]))
    return samples
