import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from cargoloader.algorithms import FlatCapacityStrategy
from cargoloader.models import TruckProfile

STRATEGY_ENV = 'CARGOLOADER_STRATEGY'
CATALOG_ENV = 'CARGOLOADER_TRUCK_CATALOG'


def default_truck_catalog() -> list[TruckProfile]:
    """The light / medium / heavy truck types. Reusable: any number of each per plan."""
    return [
        TruckProfile('light', length=2.7, width=1.5, height=1.4, max_weight=1.5, reusable=True),
        TruckProfile('medium', length=4.2, width=2.0, height=1.8, max_weight=5.0, reusable=True),
        TruckProfile('heavy', length=7.6, width=2.3, height=2.4, max_weight=15.0, reusable=True),
    ]


def truck_profile_from_dict(data: dict, reusable: bool = True) -> TruckProfile:
    """Accepts both snake_case and the camelCase keys used by stored truck_type snapshots."""
    def pick(*keys, default=None):
        for key in keys:
            if key in data:
                return data[key]
        return default

    return TruckProfile(
        name=data['name'],
        length=pick('length'),
        width=pick('width'),
        height=pick('height'),
        max_weight=pick('max_weight', 'maxWeight'),
        max_volume=pick('max_volume', 'maxVolume'),
        self_weight=pick('self_weight', 'selfWeight', default=0.0),
        reusable=reusable,
    )


def load_truck_catalog(path) -> list[TruckProfile]:
    """Reads a JSON list of truck profile objects."""
    with open(Path(path), encoding='utf-8') as f:
        entries = json.load(f)
    return [truck_profile_from_dict(entry) for entry in entries]


@dataclass
class PlannerSettings:
    strategy: str = FlatCapacityStrategy.name
    catalog: list[TruckProfile] = field(default_factory=default_truck_catalog)

    @classmethod
    def from_env(cls, environ=None) -> 'PlannerSettings':
        environ = os.environ if environ is None else environ
        strategy = environ.get(STRATEGY_ENV, FlatCapacityStrategy.name)
        catalog_path = environ.get(CATALOG_ENV)
        catalog = load_truck_catalog(catalog_path) if catalog_path else default_truck_catalog()
        return cls(strategy=strategy, catalog=catalog)
