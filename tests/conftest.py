"""Pytest configuration and shared fixtures."""

import itertools
from datetime import datetime

import pytest

from cargoloader.ids import SequentialIdFactory
from cargoloader.models import CargoItem, TruckProfile
from db.setup import initialize_db, make_engine
from db.store import SqlCargoStore

NOW = datetime(2024, 6, 10, 9, 0)
TODAY = NOW.date()


@pytest.fixture
def now():
    """Fixed planning time: 2024-06-10 09:00."""
    return NOW


@pytest.fixture
def make_cargo():
    """Factory for cargo items; ids default to G001, G002, ... in creation order."""
    counter = itertools.count(1)

    def _make(length=1.0, width=1.0, height=1.0, weight=1.0, cargo_id=None,
              arrival_date=TODAY, **kwargs):
        cargo_id = cargo_id or f"G{next(counter):03d}"
        return CargoItem(cargo_id, length, width, height, weight, arrival_date, **kwargs)

    return _make


@pytest.fixture
def make_truck():
    """Factory for single-use trucks without fleet ids."""
    def _make(name='truck', max_weight=1.5, max_volume=None, length=None, width=None,
              height=None, **kwargs):
        if max_volume is None and length is None:
            max_volume = 2.0
        return TruckProfile(name, max_weight=max_weight, max_volume=max_volume,
                            length=length, width=width, height=height, **kwargs)

    return _make


@pytest.fixture
def engine():
    """Empty in-memory SQLite database with the full schema."""
    engine = initialize_db(make_engine('sqlite://'), seed=False)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    """SqlCargoStore issuing truck-000001, truck-000002, ..."""
    return SqlCargoStore(engine, id_factory=SequentialIdFactory())


@pytest.fixture
def stocked(store):
    """Adds cargo items to the store and returns them, for commit-phase tests."""
    def _stock(*cargo_items):
        for cargo in cargo_items:
            store.add_cargo(cargo)
        return list(cargo_items)

    return _stock
