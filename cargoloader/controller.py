# cargoloader/controller.py

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from cargoloader.algorithms import PackingResult, get_strategy, pack_cargo
from cargoloader.config import PlannerSettings
from cargoloader.errors import (
    EmptyCandidateSet,
    ForcedOvercapacity,
    NoAvailableTrucks,
    PersistenceFailure,
)
from cargoloader.models import CargoItem, CargoStatus, TruckLoad, TruckStatus
from cargoloader.priority import rank_cargo
from cargoloader.store import CargoStore

logger = logging.getLogger(__name__)


@dataclass
class LoadingReport:
    """
    What a planning run did: committed loads (with ids), cargo still in the
    warehouse, per-load persistence failures and forced-overcapacity warnings.
    `skipped_cargo` is the part of `unassigned_cargo` an abort never tried to commit.
    """
    committed_loads: list[TruckLoad] = field(default_factory=list)
    unassigned_cargo: list[CargoItem] = field(default_factory=list)
    failures: list[PersistenceFailure] = field(default_factory=list)
    warnings: list[ForcedOvercapacity] = field(default_factory=list)
    skipped_cargo: list[CargoItem] = field(default_factory=list)
    aborted: bool = False

    @property
    def is_total_failure(self) -> bool:
        """Every attempted load failed to persist."""
        return bool(self.failures) and not self.committed_loads

    @property
    def failed_cargo_count(self) -> int:
        return sum(len(f.load.cargos) for f in self.failures)

    def summary(self) -> str:
        unplaced = len(self.unassigned_cargo) - self.failed_cargo_count - len(self.skipped_cargo)
        text = (f"{len(self.committed_loads)} trucks loaded successfully, "
                f"{unplaced} items could not be placed, "
                f"{self.failed_cargo_count} items failed to persist")
        if self.warnings:
            text += f", {len(self.warnings)} forced overcapacity"
        if self.aborted:
            text += f", {len(self.skipped_cargo)} items not committed (aborted)"
        return text


# --- The loading planner ---
class LoadPlanner:
    """
    Runs the cargo-to-truck allocation: rank candidates, pack them into
    trucks, then commit each truck load through the store.

    The packing phase is pure and deterministic for a given
    (cargo, trucks, now). The commit phase is sequential, one store
    transaction per load; a failed load is rolled back by the store and does
    not stop the loads after it.
    """

    def __init__(self, store: CargoStore | None = None, strategy=None, catalog=None,
                 prioritize: bool = True):
        settings = PlannerSettings()
        self.store = store
        self.strategy = get_strategy(strategy if strategy is not None else settings.strategy)
        self.catalog = list(catalog) if catalog is not None else settings.catalog
        self.prioritize = prioritize

    @classmethod
    def from_settings(cls, store: CargoStore, settings: PlannerSettings) -> 'LoadPlanner':
        return cls(store, strategy=settings.strategy, catalog=settings.catalog)

    # ====================================================================
    # PACKING PHASE (in memory)
    # ====================================================================

    def order_candidates(self, candidate_cargo, now) -> list[CargoItem]:
        if self.prioritize:
            return rank_cargo(candidate_cargo, now)
        return sorted(candidate_cargo, key=lambda c: -c.volume)

    def plan(self, candidate_cargo, available_trucks, now) -> PackingResult:
        """
        Validates the inputs and packs the cargo. No store calls.
        Raises EmptyCandidateSet / NoAvailableTrucks before any packing.
        """
        candidate_cargo = list(candidate_cargo)
        if not candidate_cargo:
            raise EmptyCandidateSet("No candidate cargo supplied for loading.")

        trucks = [t for t in available_trucks if t.is_available]
        if not trucks:
            raise NoAvailableTrucks("No truck in 'available' status to load onto.")

        ordered = self.order_candidates(candidate_cargo, now)
        result = pack_cargo(ordered, trucks, self.strategy)

        logger.info("Packed %d cargo into %d loads with %s strategy (%d unassigned, %d forced).",
                    len(candidate_cargo), len(result.loads), self.strategy.name,
                    len(result.unassigned), len(result.warnings))
        return result

    # ====================================================================
    # COMMIT PHASE (store transactions)
    # ====================================================================

    def _commit_load(self, load: TruckLoad, loading_date: date) -> TruckLoad:
        with self.store.transaction():
            load_id = self.store.create_truck_load(
                load.truck, loading_date, forced_overcapacity=load.forced_overcapacity)
            for cargo in load.cargos:
                self.store.link_cargo_to_load(load_id, cargo.id)
                self.store.update_cargo_status(cargo.id, CargoStatus.SHIPPED)
            if load.truck.truck_id is not None:
                self.store.update_truck_status(load.truck.truck_id, TruckStatus.LOADING)
        return load.committed(load_id, loading_date)

    def materialize(self, packing: PackingResult, loading_date: date, cancel=None) -> LoadingReport:
        """
        Commits every planned load in order. `cancel` (a threading.Event)
        is checked before each load; once set, no further load is started.
        """
        if self.store is None:
            raise RuntimeError("LoadPlanner has no store to commit loads to.")

        report = LoadingReport(warnings=list(packing.warnings))
        unplaced = []

        for index, load in enumerate(packing.loads):
            if cancel is not None and cancel.is_set():
                skipped = packing.loads[index:]
                logger.warning("Loading aborted: %d planned loads not committed.", len(skipped))
                for pending in skipped:
                    report.skipped_cargo.extend(pending.cargos)
                unplaced.extend(report.skipped_cargo)
                report.aborted = True
                break

            try:
                committed = self._commit_load(load, loading_date)
            except Exception as e:
                failure = PersistenceFailure(load, e)
                failure.__cause__ = e
                report.failures.append(failure)
                unplaced.extend(load.cargos)
                logger.warning("!! %s. Load rolled back; continuing with next truck.", failure)
                continue

            for cargo in load.cargos:
                cargo.status = CargoStatus.SHIPPED
                cargo.truck_load_id = committed.load_id
            report.committed_loads.append(committed)
            logger.info("-> COMMITTED: %r", committed)

        report.unassigned_cargo = unplaced + list(packing.unassigned)

        if report.is_total_failure:
            logger.error("Every load failed to persist (%d failures).", len(report.failures))
        logger.info("Loading finished: %s.", report.summary())
        return report

    # ====================================================================
    # ENTRY POINTS
    # ====================================================================

    def plan_loading(self, candidate_cargo, available_trucks, now,
                     loading_date: date | None = None, cancel=None) -> LoadingReport:
        """Ranks, packs and commits. `now` drives both scoring and the default loading date."""
        packing = self.plan(candidate_cargo, available_trucks, now)
        if loading_date is None:
            loading_date = now.date() if isinstance(now, datetime) else now
        return self.materialize(packing, loading_date, cancel=cancel)

    def load_from_warehouse(self, cargo_ids=None, now=None, cancel=None) -> LoadingReport:
        """
        Loads warehouse cargo (optionally only `cargo_ids`) onto the available
        fleet, or onto the configured catalog when no fleet truck is available.
        """
        now = now if now is not None else datetime.now()
        candidates = self.store.list_cargo(CargoStatus.IN_WAREHOUSE)
        if cargo_ids is not None:
            wanted = set(cargo_ids)
            candidates = [c for c in candidates if c.id in wanted]

        trucks = self.store.list_trucks(TruckStatus.AVAILABLE)
        if not trucks:
            logger.info("No fleet trucks available; using the %d-type catalog.", len(self.catalog))
            trucks = self.catalog

        return self.plan_loading(candidates, trucks, now, cancel=cancel)

    def mark_carry_over(self, cargo_items):
        """Flags cargo for elevated priority on the next run. Always the caller's decision."""
        with self.store.transaction():
            for cargo in cargo_items:
                self.store.set_carry_over(cargo.id, True)
        for cargo in cargo_items:
            cargo.is_carry_over = True
        logger.info("Marked %d cargo as carry-over.", len(cargo_items))
