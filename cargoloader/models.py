from abc import ABC, abstractmethod
from datetime import date
from enum import Enum

from cargoloader.errors import InvalidCargo, InvalidDimension, InvalidTruckProfile

# Slack allowed on capacity comparisons so that float rounding in sums
# (0.1 + 0.2 > 0.3) never rejects an exact fit.
CAPACITY_TOLERANCE = 1e-9


class CargoStatus(str, Enum):
    IN_WAREHOUSE = 'warehouse'
    SHIPPED = 'shipped'


class TruckStatus(str, Enum):
    AVAILABLE = 'available'
    LOADING = 'loading'
    DISPATCHED = 'dispatched'
    MAINTENANCE = 'maintenance'


class CustomerTier(str, Enum):
    LARGE = 'large'
    MEDIUM = 'medium'
    SMALL = 'small'
    NONE = 'none'


class DensityClass(str, Enum):
    ULTRA_LIGHT = 'ultra-light'
    LIGHT = 'light'
    DENSE_LIGHT = 'dense-light'
    DENSE = 'dense'
    ULTRA_DENSE = 'ultra-dense'


# Upper bound (kg/m3, inclusive) of each band; anything above the last is ULTRA_DENSE.
DENSITY_BANDS = [
    (100.0, DensityClass.ULTRA_LIGHT),
    (200.0, DensityClass.LIGHT),
    (250.0, DensityClass.DENSE_LIGHT),
    (350.0, DensityClass.DENSE),
]


def compute_volume(length: float, width: float, height: float) -> float:
    """Volume in cubic meters. Non-positive dimensions are rejected, never coerced."""
    for label, value in (('length', length), ('width', width), ('height', height)):
        if value is None or value <= 0:
            raise InvalidDimension(f"{label} must be positive, got {value!r}")
    return length * width * height


def classify_density(weight: float, volume: float) -> DensityClass:
    """
    Classify cargo by kg/m3 (weight is in tons). A zero volume has no density
    and gets the LIGHT default.
    """
    if volume < 0:
        raise InvalidDimension(f"volume must not be negative, got {volume!r}")
    if volume == 0:
        return DensityClass.LIGHT

    density = weight * 1000 / volume
    for upper, density_class in DENSITY_BANDS:
        if density <= upper:
            return density_class
    return DensityClass.ULTRA_DENSE


# --- Class: CargoItem ---
class CargoItem:
    """
    A single inbound shipment unit. Volume is derived from the dimensions once,
    at creation, and cannot be set independently.
    """
    def __init__(self, cargo_id: str, length: float, width: float, height: float, weight: float,
                 arrival_date: date, urgent: bool = False, is_carry_over: bool = False,
                 has_time_limit: bool = False, time_limit_date: date | None = None,
                 customer_tier: CustomerTier = CustomerTier.NONE,
                 status: CargoStatus = CargoStatus.IN_WAREHOUSE,
                 name: str = '', manufacturer: str = '', quantity: int = 1,
                 category: str = '', notes: str = '', customer_id: str | None = None,
                 truck_load_id: str | None = None):
        self._volume = compute_volume(length, width, height)
        if weight is None or weight <= 0:
            raise InvalidCargo(f"Cargo {cargo_id}: weight must be positive, got {weight!r}")
        if quantity < 1:
            raise InvalidCargo(f"Cargo {cargo_id}: quantity must be at least 1, got {quantity!r}")
        if has_time_limit and time_limit_date is None:
            raise InvalidCargo(f"Cargo {cargo_id}: has_time_limit requires time_limit_date")

        self._id = cargo_id
        self._dimensions = (float(length), float(width), float(height))
        self.weight = float(weight)
        self.arrival_date = arrival_date
        self.urgent = urgent
        self.is_carry_over = is_carry_over
        self.has_time_limit = has_time_limit
        self.time_limit_date = time_limit_date
        self.customer_tier = CustomerTier(customer_tier)
        self.status = CargoStatus(status)
        self.name = name
        self.manufacturer = manufacturer
        self.quantity = quantity
        self.category = category
        self.notes = notes
        self.customer_id = customer_id
        self.truck_load_id = truck_load_id

    @property
    def id(self) -> str:
        return self._id

    @property
    def dimensions(self) -> tuple[float, float, float]:
        return self._dimensions

    @property
    def length(self) -> float:
        return self._dimensions[0]

    @property
    def width(self) -> float:
        return self._dimensions[1]

    @property
    def height(self) -> float:
        return self._dimensions[2]

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def density_class(self) -> DensityClass:
        return classify_density(self.weight, self._volume)

    def __repr__(self):
        flags = ''.join([
            'U' if self.urgent else '',
            'C' if self.is_carry_over else '',
            'T' if self.has_time_limit else '',
        ])
        return (f"Cargo(ID={self.id}, W={self.weight:.2f}t, V={self.volume:.2f}m3"
                f"{', ' + flags if flags else ''})")


# --- Class: TruckProfile ---
class TruckProfile:
    """
    Capacity template of a truck: either a reusable catalog type
    (light / medium / heavy) or one fleet vehicle that carries at most one
    load per plan.
    """
    def __init__(self, name: str, max_weight: float, length: float | None = None,
                 width: float | None = None, height: float | None = None,
                 max_volume: float | None = None, self_weight: float = 0.0,
                 status: TruckStatus = TruckStatus.AVAILABLE, truck_id: str | None = None,
                 reusable: bool = False):
        dims = (length, width, height)
        if any(d is not None for d in dims):
            if any(d is None or d <= 0 for d in dims):
                raise InvalidTruckProfile(f"Truck '{name}': dimensions must all be positive, got {dims}")
            if max_volume is None:
                max_volume = length * width * height
        if max_volume is None or max_volume <= 0:
            raise InvalidTruckProfile(f"Truck '{name}': max_volume must be positive, got {max_volume!r}")
        if max_weight is None or max_weight <= 0:
            raise InvalidTruckProfile(f"Truck '{name}': max_weight must be positive, got {max_weight!r}")
        if self_weight < 0 or self_weight >= max_weight:
            raise InvalidTruckProfile(
                f"Truck '{name}': self_weight {self_weight!r} must be in [0, max_weight)")

        self.name = name
        self.length = length
        self.width = width
        self.height = height
        self.max_weight = float(max_weight)
        self.max_volume = float(max_volume)
        self.self_weight = float(self_weight)
        self.status = TruckStatus(status)
        self.truck_id = truck_id
        self.reusable = reusable

    @property
    def available_weight(self) -> float:
        return self.max_weight - self.self_weight

    @property
    def weight_capacity(self) -> float:
        """The payload limit the packing engine enforces."""
        return self.available_weight

    @property
    def has_dimensions(self) -> bool:
        return self.length is not None

    @property
    def is_available(self) -> bool:
        return self.status == TruckStatus.AVAILABLE

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'length': self.length,
            'width': self.width,
            'height': self.height,
            'maxWeight': self.max_weight,
            'maxVolume': self.max_volume,
            'selfWeight': self.self_weight,
        }

    def __repr__(self):
        kind = 'catalog' if self.reusable else f"fleet:{self.truck_id}"
        return (f"Truck({self.name}, {kind}, Cap={self.weight_capacity:.2f}t/"
                f"{self.max_volume:.2f}m3, {self.status.value})")


# --- Class: Placement ---
class Placement:
    """Where the geometric strategy put one cargo item inside a truck."""
    def __init__(self, cargo: CargoItem, x: float, y: float, z: float,
                 length: float, width: float, height: float):
        self.cargo = cargo
        self.x = x
        self.y = y
        self.z = z
        self.length = length
        self.width = width
        self.height = height

    def __repr__(self):
        return (f"Placement({self.cargo.id} @ {self.x:.2f},{self.y:.2f},{self.z:.2f} "
                f"| {self.length:.2f}x{self.width:.2f}x{self.height:.2f})")


# --- Class: TruckLoad ---
class TruckLoad:
    """
    A set of cargo assigned to one truck for one shipment. `load_id` stays
    None until the store has persisted the load.
    """
    def __init__(self, truck: TruckProfile, cargos, loading_date: date | None = None,
                 load_id: str | None = None, placements=(), forced_overcapacity: bool = False):
        self.truck = truck
        self.cargos = tuple(cargos)
        self.loading_date = loading_date
        self.load_id = load_id
        self.placements = tuple(placements)
        self.forced_overcapacity = forced_overcapacity

    @property
    def total_weight(self) -> float:
        return sum(c.weight for c in self.cargos)

    @property
    def total_volume(self) -> float:
        return sum(c.volume for c in self.cargos)

    @property
    def weight_utilization(self) -> float:
        return self.total_weight / self.truck.weight_capacity

    @property
    def volume_utilization(self) -> float:
        return self.total_volume / self.truck.max_volume

    @property
    def stowage_order(self) -> list[CargoItem]:
        """Physical fill order: largest volume first, loading order on ties."""
        return sorted(self.cargos, key=lambda c: -c.volume)

    def committed(self, load_id: str, loading_date: date) -> 'TruckLoad':
        """A copy of this planned load carrying the id the store assigned."""
        return TruckLoad(self.truck, self.cargos, loading_date, load_id,
                         self.placements, self.forced_overcapacity)

    def __repr__(self):
        forced = ', FORCED' if self.forced_overcapacity else ''
        return (f"TruckLoad(ID={self.load_id}, {self.truck.name}, {len(self.cargos)} cargo, "
                f"{self.total_weight:.2f}/{self.truck.weight_capacity:.2f}t{forced})")


# --- CargoHold (Abstract Base Class) ---
class CargoHold(ABC):
    """
    The running state of one truck while a strategy tries to fill it.
    Subclasses decide whether a cargo item can still be admitted.
    """
    def __init__(self, truck: TruckProfile):
        self.truck = truck
        self.weight = 0.0
        self.volume = 0.0
        self.cargos: list[CargoItem] = []
        self.placements: list[Placement] = []

    @abstractmethod
    def try_load(self, cargo: CargoItem) -> bool:
        """Admits the item and returns True, or leaves the hold untouched and returns False."""
        pass

    def has_weight_for(self, cargo: CargoItem) -> bool:
        return self.weight + cargo.weight <= self.truck.weight_capacity + CAPACITY_TOLERANCE

    def has_volume_for(self, cargo: CargoItem) -> bool:
        return self.volume + cargo.volume <= self.truck.max_volume + CAPACITY_TOLERANCE

    def _admit(self, cargo: CargoItem):
        self.cargos.append(cargo)
        self.weight += cargo.weight
        self.volume += cargo.volume

    def __len__(self):
        return len(self.cargos)

    def __repr__(self):
        return (f"{type(self).__name__}({self.truck.name}, {len(self.cargos)} cargo, "
                f"{self.weight:.2f}/{self.truck.weight_capacity:.2f}t, "
                f"{self.volume:.2f}/{self.truck.max_volume:.2f}m3)")
