# main.py

import logging

from cargoloader.config import PlannerSettings
from cargoloader.controller import LoadPlanner
from cargoloader.models import CargoStatus
from db.setup import initialize_db, make_engine
from db.store import SqlCargoStore

logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
logger = logging.getLogger('main')

# Fresh in-memory warehouse for every run
engine = initialize_db(make_engine('sqlite://'))
store = SqlCargoStore(engine)
settings = PlannerSettings.from_env()
planner = LoadPlanner.from_settings(store, settings)

print("\n--- 1. WAREHOUSE BEFORE LOADING ---")
for cargo in store.list_cargo(CargoStatus.IN_WAREHOUSE):
    print(f"  {cargo} {cargo.density_class.value}")

print(f"\n--- 2. PLANNING ({planner.strategy.name} strategy) ---")
report = planner.load_from_warehouse()

for load in report.committed_loads:
    print(f"  {load}")
    # Largest items go in first
    for cargo in load.stowage_order:
        print(f"      {cargo}")
for warning in report.warnings:
    print(f"  !! {warning}")
for failure in report.failures:
    print(f"  !! {failure}")

# Unplaced cargo gets elevated priority next time
if report.unassigned_cargo:
    planner.mark_carry_over(report.unassigned_cargo)

print("\n--- 3. FINAL STATUS ---")
print(f"  {report.summary()}")
print(f"  Still in warehouse: {[c.id for c in store.list_cargo(CargoStatus.IN_WAREHOUSE)]}")
