"""
Tests for the LoadPlanner: preconditions, the end-to-end loading scenarios,
and per-load commit isolation against a real (in-memory) store.
"""

import threading
from datetime import date

import pytest

from cargoloader.controller import LoadingReport, LoadPlanner
from cargoloader.errors import (
    EmptyCandidateSet,
    InvalidDimension,
    NoAvailableTrucks,
    PersistenceFailure,
    StaleCargoStatus,
    UnknownStrategy,
)
from cargoloader.models import CargoStatus, TruckProfile, TruckStatus
from db.store import SqlCargoStore


class FailingLinkStore(SqlCargoStore):
    """Fails the link step for selected cargo ids, after the load record was created."""

    def __init__(self, engine, fail_on, **kwargs):
        super().__init__(engine, **kwargs)
        self.fail_on = set(fail_on)

    def link_cargo_to_load(self, load_id, cargo_id):
        super().link_cargo_to_load(load_id, cargo_id)
        if cargo_id in self.fail_on:
            raise RuntimeError(f"disk full while linking {cargo_id}")


class CancelAfterFirstShipmentStore(SqlCargoStore):
    """Sets the cancel event as soon as any cargo is shipped."""

    def __init__(self, engine, cancel, **kwargs):
        super().__init__(engine, **kwargs)
        self.cancel = cancel

    def update_cargo_status(self, cargo_id, new_status):
        super().update_cargo_status(cargo_id, new_status)
        self.cancel.set()


def statuses(store):
    return {c.id: c.status for c in store.list_cargo()}


@pytest.fixture(params=['flat', 'geometric'])
def planner(request, store):
    return LoadPlanner(store, strategy=request.param)


# ====================================================================
# SCENARIOS
# ====================================================================

class TestLoadingScenarios:

    def test_urgent_item_loads_first_in_shared_truck(self, planner, store, stocked,
                                                     make_cargo, make_truck, now):
        regular = make_cargo(height=1.0, weight=1.0)
        urgent = make_cargo(height=0.5, weight=0.5, urgent=True)
        stocked(regular, urgent)

        report = planner.plan_loading([regular, urgent], [make_truck(max_weight=1.5, max_volume=2.0)], now)

        assert len(report.committed_loads) == 1
        load = report.committed_loads[0]
        assert load.cargos == (urgent, regular)
        assert load.load_id == 'truck-000001'
        assert load.loading_date == date(2024, 6, 10)
        assert report.unassigned_cargo == []
        assert statuses(store) == {regular.id: CargoStatus.SHIPPED, urgent.id: CargoStatus.SHIPPED}
        assert regular.status == CargoStatus.SHIPPED
        assert regular.truck_load_id == 'truck-000001'

    def test_overweight_item_is_forced_with_warning(self, planner, store, stocked,
                                                    make_cargo, make_truck, now):
        giant = make_cargo(weight=20.0)
        stocked(giant)
        truck = make_truck(length=7.6, width=2.3, height=2.4, max_weight=15.0)

        report = planner.plan_loading([giant], [truck], now)

        assert len(report.committed_loads) == 1
        assert report.committed_loads[0].forced_overcapacity
        assert len(report.warnings) == 1
        assert report.warnings[0].cargo is giant
        assert store.list_truck_loads()[0].forced_overcapacity
        assert "1 forced overcapacity" in report.summary()

    def test_second_item_stays_in_warehouse_when_truck_is_full(self, planner, store, stocked,
                                                               make_cargo, make_truck, now):
        first, second = stocked(make_cargo(), make_cargo())
        truck = make_truck(length=1.0, width=1.0, height=1.0, max_weight=1.0)

        report = planner.plan_loading([first, second], [truck], now)

        assert [load.cargos for load in report.committed_loads] == [(first,)]
        assert report.unassigned_cargo == [second]
        assert statuses(store) == {first.id: CargoStatus.SHIPPED, second.id: CargoStatus.IN_WAREHOUSE}
        assert report.summary() == ("1 trucks loaded successfully, 1 items could not be placed, "
                                    "0 items failed to persist")

    def test_empty_candidates_create_nothing(self, planner, store, make_truck, now):
        with pytest.raises(EmptyCandidateSet):
            planner.plan_loading([], [make_truck()], now)
        assert store.list_truck_loads() == []

    def test_zero_length_is_rejected_before_packing(self, make_cargo):
        with pytest.raises(InvalidDimension):
            make_cargo(length=0)


# ====================================================================
# PRECONDITIONS AND ORDERING
# ====================================================================

class TestPlan:

    def test_no_trucks(self, make_cargo, now):
        with pytest.raises(NoAvailableTrucks):
            LoadPlanner().plan([make_cargo()], [], now)

    def test_only_available_trucks_are_used(self, make_cargo, make_truck, now):
        busy = make_truck('busy', status=TruckStatus.MAINTENANCE)
        with pytest.raises(NoAvailableTrucks):
            LoadPlanner().plan([make_cargo()], [busy], now)

        ready = make_truck('ready')
        result = LoadPlanner().plan([make_cargo()], [busy, ready], now)
        assert [load.truck for load in result.loads] == [ready]

    def test_plan_does_not_touch_the_store(self, store, stocked, make_cargo, make_truck, now):
        cargo = stocked(make_cargo())
        LoadPlanner(store).plan(cargo, [make_truck()], now)
        assert store.list_truck_loads() == []
        assert statuses(store) == {cargo[0].id: CargoStatus.IN_WAREHOUSE}

    def test_urgent_beats_regular_regardless_of_input_order(self, make_cargo, make_truck, now):
        regular = make_cargo(arrival_date=date(2024, 5, 1))
        urgent = make_cargo(urgent=True)
        truck = make_truck(max_weight=1.0, max_volume=1.0)
        result = LoadPlanner().plan([regular, urgent], [truck], now)
        assert result.loads[0].cargos == (urgent,)
        assert result.unassigned == [regular]

    def test_without_priority_largest_volume_goes_first(self, make_cargo, make_truck, now):
        small_urgent = make_cargo(height=0.5, urgent=True)
        large = make_cargo(height=2.0)
        truck = make_truck(max_weight=5.0, max_volume=2.0)
        result = LoadPlanner(prioritize=False).plan([small_urgent, large], [truck], now)
        assert result.loads[0].cargos == (large,)
        assert result.unassigned == [small_urgent]

    def test_unknown_strategy_name(self):
        with pytest.raises(UnknownStrategy):
            LoadPlanner(strategy='optimal')


# ====================================================================
# COMMIT PHASE
# ====================================================================

class TestMaterialize:

    def two_single_truck_loads(self, make_cargo, make_truck):
        x, y = make_cargo(), make_cargo()
        trucks = [make_truck('t1', max_weight=1.0, max_volume=1.0),
                  make_truck('t2', max_weight=1.0, max_volume=1.0)]
        return x, y, trucks

    def test_failed_load_is_rolled_back_and_siblings_commit(self, engine, make_cargo, make_truck, now):
        store = FailingLinkStore(engine, fail_on={'G001'})
        x, y, trucks = self.two_single_truck_loads(make_cargo, make_truck)
        store.add_cargo(x)
        store.add_cargo(y)

        report = LoadPlanner(store).plan_loading([x, y], trucks, now)

        assert len(report.failures) == 1
        failure = report.failures[0]
        assert isinstance(failure, PersistenceFailure)
        assert isinstance(failure.cause, RuntimeError)
        assert failure.cargo_ids == ['G001']

        assert [load.cargos for load in report.committed_loads] == [(y,)]
        assert report.unassigned_cargo == [x]
        assert x.status == CargoStatus.IN_WAREHOUSE

        # Nothing of the failed load survives in the store.
        loads = store.list_truck_loads()
        assert len(loads) == 1
        assert [c.id for c in loads[0].cargos] == ['G002']
        assert statuses(store) == {'G001': CargoStatus.IN_WAREHOUSE, 'G002': CargoStatus.SHIPPED}
        assert report.summary() == ("1 trucks loaded successfully, 0 items could not be placed, "
                                    "1 items failed to persist")
        assert not report.is_total_failure

    def test_every_load_failing_is_total_failure(self, engine, make_cargo, make_truck, now):
        store = FailingLinkStore(engine, fail_on={'G001', 'G002'})
        x, y, trucks = self.two_single_truck_loads(make_cargo, make_truck)
        store.add_cargo(x)
        store.add_cargo(y)

        report = LoadPlanner(store).plan_loading([x, y], trucks, now)

        assert report.committed_loads == []
        assert report.is_total_failure
        assert report.unassigned_cargo == [x, y]
        assert store.list_truck_loads() == []

    def test_cargo_shipped_by_concurrent_run_fails_that_load(self, store, stocked,
                                                             make_cargo, make_truck, now):
        x, y, trucks = self.two_single_truck_loads(make_cargo, make_truck)
        stocked(x, y)
        planner = LoadPlanner(store)
        packing = planner.plan([x, y], trucks, now)

        # Another run ships x between planning and committing.
        store.update_cargo_status(x.id, CargoStatus.SHIPPED)

        report = planner.materialize(packing, now.date())

        assert isinstance(report.failures[0].cause, StaleCargoStatus)
        assert [load.cargos for load in report.committed_loads] == [(y,)]
        assert report.unassigned_cargo == [x]
        assert len(store.list_truck_loads()) == 1

    def test_cancel_before_commit_leaves_store_untouched(self, store, stocked,
                                                         make_cargo, make_truck, now):
        x, y, trucks = self.two_single_truck_loads(make_cargo, make_truck)
        stocked(x, y)
        cancel = threading.Event()
        cancel.set()

        report = LoadPlanner(store).plan_loading([x, y], trucks, now, cancel=cancel)

        assert report.aborted
        assert report.committed_loads == []
        assert report.unassigned_cargo == [x, y]
        assert store.list_truck_loads() == []
        assert set(statuses(store).values()) == {CargoStatus.IN_WAREHOUSE}
        assert report.skipped_cargo == [x, y]
        assert report.summary() == ("0 trucks loaded successfully, 0 items could not be placed, "
                                    "0 items failed to persist, 2 items not committed (aborted)")

    def test_abort_mid_run_counts_skipped_apart_from_unplaced(self, engine, make_cargo,
                                                              make_truck, now):
        cancel = threading.Event()
        store = CancelAfterFirstShipmentStore(engine, cancel)
        x, y, trucks = self.two_single_truck_loads(make_cargo, make_truck)
        leftover = make_cargo()
        for cargo in (x, y, leftover):
            store.add_cargo(cargo)

        report = LoadPlanner(store).plan_loading([x, y, leftover], trucks, now, cancel=cancel)

        assert [load.cargos for load in report.committed_loads] == [(x,)]
        assert report.skipped_cargo == [y]
        assert report.unassigned_cargo == [y, leftover]
        assert report.summary() == ("1 trucks loaded successfully, 1 items could not be placed, "
                                    "0 items failed to persist, 1 items not committed (aborted)")

    def test_materialize_requires_a_store(self, make_cargo, make_truck, now):
        planner = LoadPlanner()
        packing = planner.plan([make_cargo()], [make_truck()], now)
        with pytest.raises(RuntimeError):
            planner.materialize(packing, now.date())

    def test_report_defaults(self):
        report = LoadingReport()
        assert not report.is_total_failure
        assert report.summary() == ("0 trucks loaded successfully, 0 items could not be placed, "
                                    "0 items failed to persist")


# ====================================================================
# WAREHOUSE ENTRY POINT
# ====================================================================

class TestLoadFromWarehouse:

    def test_fleet_truck_is_marked_loading(self, store, stocked, make_cargo, now):
        stocked(make_cargo(), make_cargo())
        store.add_truck(TruckProfile('LOGI-001', max_weight=4.0, max_volume=10.0, self_weight=1.0), 'T001')

        report = LoadPlanner(store).load_from_warehouse(now=now)

        assert len(report.committed_loads) == 1
        assert report.committed_loads[0].truck.truck_id == 'T001'
        assert store.list_trucks(TruckStatus.AVAILABLE) == []
        assert [t.truck_id for t in store.list_trucks(TruckStatus.LOADING)] == ['T001']
        assert store.list_truck_loads()[0].truck.truck_id == 'T001'

    def test_catalog_used_when_no_fleet_truck_available(self, store, stocked, make_cargo, now):
        stocked(make_cargo(weight=1.0), make_cargo(weight=1.0))
        catalog = [TruckProfile('light', max_weight=1.0, max_volume=3.0, reusable=True)]

        report = LoadPlanner(store, catalog=catalog).load_from_warehouse(now=now)

        assert len(report.committed_loads) == 2
        assert all(load.truck.name == 'light' for load in report.committed_loads)
        assert store.list_cargo(CargoStatus.IN_WAREHOUSE) == []

    def test_selected_ids_only(self, store, stocked, make_cargo, now):
        stocked(make_cargo(), make_cargo(), make_cargo())
        report = LoadPlanner(store).load_from_warehouse(cargo_ids=['G002'], now=now)

        shipped = [c.id for load in report.committed_loads for c in load.cargos]
        assert shipped == ['G002']
        assert [c.id for c in store.list_cargo(CargoStatus.IN_WAREHOUSE)] == ['G001', 'G003']

    def test_shipped_cargo_is_not_a_candidate(self, store, stocked, make_cargo, now):
        stocked(make_cargo())
        store.update_cargo_status('G001', CargoStatus.SHIPPED)
        with pytest.raises(EmptyCandidateSet):
            LoadPlanner(store).load_from_warehouse(now=now)

    def test_carry_over_marking_raises_next_priority(self, store, stocked, make_cargo, make_truck, now):
        first, second = stocked(make_cargo(), make_cargo())
        planner = LoadPlanner(store)
        report = planner.plan_loading([first, second], [make_truck(max_weight=1.0, max_volume=1.0)], now)
        assert report.unassigned_cargo == [second]

        planner.mark_carry_over(report.unassigned_cargo)

        assert second.is_carry_over
        [reloaded] = store.list_cargo(CargoStatus.IN_WAREHOUSE)
        assert reloaded.id == second.id
        assert reloaded.is_carry_over
