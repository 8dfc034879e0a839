# cargoloader/algorithms.py

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from cargoloader.errors import ForcedOvercapacity, UnknownStrategy
from cargoloader.models import (
    CAPACITY_TOLERANCE,
    CargoHold,
    CargoItem,
    Placement,
    TruckLoad,
    TruckProfile,
)

logger = logging.getLogger(__name__)


# ====================================================================
# FLAT CAPACITY HOLD - running weight / volume sums only
# ====================================================================

class FlatHold(CargoHold):
    """Admits an item while both the weight and the volume sums stay within capacity."""

    def try_load(self, cargo: CargoItem) -> bool:
        if self.has_weight_for(cargo) and self.has_volume_for(cargo):
            self._admit(cargo)
            return True
        return False


# ====================================================================
# SPATIAL HOLD - free rectangular sub-volumes ("spaces")
# ====================================================================

class FreeSpace:
    """
    An empty axis-aligned box inside the truck.

    Attributes:
        x, y, z: corner closest to the truck's origin
        length, width, height: extent along each axis
    """

    def __init__(self, x, y, z, length, width, height):
        self.x = x
        self.y = y
        self.z = z
        self.length = length
        self.width = width
        self.height = height
        self.volume = length * width * height

    def can_fit(self, item_l, item_w, item_h) -> bool:
        return (item_l <= self.length + CAPACITY_TOLERANCE and
                item_w <= self.width + CAPACITY_TOLERANCE and
                item_h <= self.height + CAPACITY_TOLERANCE)

    def __repr__(self):
        return (f"Space({self.x:.2f},{self.y:.2f},{self.z:.2f} | "
                f"{self.length:.2f}x{self.width:.2f}x{self.height:.2f})")


def orientations(length, width, height) -> list[tuple[float, float, float]]:
    """The six axis-aligned rotations of a box, in a fixed order, without repeats."""
    candidates = [
        (length, width, height),
        (length, height, width),
        (width, length, height),
        (width, height, length),
        (height, length, width),
        (height, width, length),
    ]
    unique = []
    for dims in candidates:
        if dims not in unique:
            unique.append(dims)
    return unique


def split_space(space: FreeSpace, item_l, item_w, item_h) -> list[FreeSpace]:
    """
    Guillotine split of `space` after a box is placed at its origin corner.
    Returns up to three disjoint residual spaces, one per axis with slack:
    beside the box (length), behind it (width) and on top of it (height).
    """
    residuals = []

    if space.length - item_l > CAPACITY_TOLERANCE:
        residuals.append(FreeSpace(
            space.x + item_l, space.y, space.z,
            space.length - item_l, space.width, space.height
        ))

    if space.width - item_w > CAPACITY_TOLERANCE:
        residuals.append(FreeSpace(
            space.x, space.y + item_w, space.z,
            item_l, space.width - item_w, space.height
        ))

    if space.height - item_h > CAPACITY_TOLERANCE:
        residuals.append(FreeSpace(
            space.x, space.y, space.z + item_h,
            item_l, item_w, space.height - item_h
        ))

    return residuals


class SpatialHold(CargoHold):
    """
    Best-fit placement into free spaces. Among all spaces the item fits (in
    any rotation), the one leaving the least empty volume wins; the earliest
    space in the list wins ties.
    """

    def __init__(self, truck: TruckProfile):
        super().__init__(truck)
        self.spaces = [FreeSpace(0.0, 0.0, 0.0, truck.length, truck.width, truck.height)]

    def find_best_space(self, cargo: CargoItem):
        """Returns (index, space, rotated dims) of the best fit, or None."""
        best = None
        best_waste = None

        for index, space in enumerate(self.spaces):
            for dims in orientations(*cargo.dimensions):
                if not space.can_fit(*dims):
                    continue
                waste = space.volume - cargo.volume
                if best is None or waste < best_waste:
                    best = (index, space, dims)
                    best_waste = waste
                break

        return best

    def try_load(self, cargo: CargoItem) -> bool:
        # A geometric fit never overrides the payload or a declared max_volume.
        if not (self.has_weight_for(cargo) and self.has_volume_for(cargo)):
            return False

        best = self.find_best_space(cargo)
        if best is None:
            return False

        index, space, (item_l, item_w, item_h) = best
        self.placements.append(Placement(cargo, space.x, space.y, space.z, item_l, item_w, item_h))
        self.spaces[index:index + 1] = split_space(space, item_l, item_w, item_h)
        self._admit(cargo)
        return True


# ====================================================================
# STRATEGIES
# ====================================================================

class PackingStrategy(ABC):
    """
    Fills one truck from a cargo pool. The pool is walked in the order given;
    an item that does not fit is skipped and the walk continues (first-fit).
    """
    name = None

    @abstractmethod
    def open_hold(self, truck: TruckProfile) -> CargoHold:
        pass

    def fill(self, truck: TruckProfile, pool) -> CargoHold:
        hold = self.open_hold(truck)
        for cargo in pool:
            hold.try_load(cargo)
        return hold

    def __repr__(self):
        return f"{type(self).__name__}()"


class FlatCapacityStrategy(PackingStrategy):
    name = 'flat'

    def open_hold(self, truck: TruckProfile) -> CargoHold:
        return FlatHold(truck)


class GeometricStrategy(PackingStrategy):
    """3D space-splitting placement. Trucks without dimensions get the flat check."""
    name = 'geometric'

    def open_hold(self, truck: TruckProfile) -> CargoHold:
        if not truck.has_dimensions:
            logger.debug("Truck '%s' has no dimensions; using flat capacity check.", truck.name)
            return FlatHold(truck)
        return SpatialHold(truck)


STRATEGIES = {
    FlatCapacityStrategy.name: FlatCapacityStrategy,
    GeometricStrategy.name: GeometricStrategy,
}


def get_strategy(strategy) -> PackingStrategy:
    """Accepts a strategy instance or a registered name ('flat', 'geometric')."""
    if isinstance(strategy, PackingStrategy):
        return strategy
    try:
        return STRATEGIES[strategy]()
    except KeyError:
        raise UnknownStrategy(
            f"Unknown packing strategy {strategy!r}; expected one of {sorted(STRATEGIES)}"
        ) from None


# ====================================================================
# MULTI-TRUCK ROUNDS
# ====================================================================

@dataclass
class PackingResult:
    """
    Outcome of the in-memory packing phase.

    Attributes:
        loads: planned truck loads in commit order (no ids yet)
        unassigned: cargo no remaining truck could take, in loading order
        warnings: one ForcedOvercapacity per fallback load
    """
    loads: list[TruckLoad] = field(default_factory=list)
    unassigned: list[CargoItem] = field(default_factory=list)
    warnings: list[ForcedOvercapacity] = field(default_factory=list)


def _is_better(trial: CargoHold, best: CargoHold | None) -> bool:
    # More items, then more weight; equal trials keep the earlier truck.
    if best is None:
        return True
    return (len(trial), trial.weight) > (len(best), best.weight)


def _largest_truck(trucks: list[TruckProfile]) -> TruckProfile:
    largest = trucks[0]
    for truck in trucks[1:]:
        if (truck.weight_capacity, truck.max_volume) > (largest.weight_capacity, largest.max_volume):
            largest = truck
    return largest


def pack_cargo(ranked_cargo, trucks, strategy) -> PackingResult:
    """
    Greedy multi-truck packing.

    Each round trials every remaining truck against the remaining cargo and
    commits the trial that admits the most items. If no truck admits
    anything, the first remaining item is forced onto the largest truck on
    its own and a ForcedOvercapacity warning is recorded. Single-use trucks
    leave the pool once committed. Rounds continue until either pool is empty.

    Complexity: O(cargo x trucks) per round, at most one round per item.
    """
    strategy = get_strategy(strategy)
    remaining = list(ranked_cargo)
    truck_pool = list(trucks)
    result = PackingResult()

    while remaining and truck_pool:
        best = None
        for truck in truck_pool:
            trial = strategy.fill(truck, remaining)
            if len(trial) and _is_better(trial, best):
                best = trial

        if best is not None:
            load = TruckLoad(best.truck, best.cargos, placements=best.placements)
            logger.debug("Round %d: '%s' admits %d of %d cargo (%.2f t).",
                         len(result.loads) + 1, best.truck.name, len(best),
                         len(remaining), best.weight)
        else:
            truck = _largest_truck(truck_pool)
            cargo = remaining[0]
            load = TruckLoad(truck, [cargo], forced_overcapacity=True)
            warning = ForcedOvercapacity(truck, cargo)
            result.warnings.append(warning)
            logger.warning("Forced overcapacity: %s", warning)

        result.loads.append(load)
        if not load.truck.reusable:
            truck_pool = [t for t in truck_pool if t is not load.truck]

        taken = {id(c) for c in load.cargos}
        remaining = [c for c in remaining if id(c) not in taken]

    result.unassigned = remaining
    if remaining:
        logger.info("%d cargo left unassigned: no trucks remain.", len(remaining))
    return result
