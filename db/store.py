import json
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime

from sqlalchemy.orm import sessionmaker

from cargoloader.config import truck_profile_from_dict
from cargoloader.errors import StaleCargoStatus
from cargoloader.ids import uuid_load_id
from cargoloader.models import (
    CargoItem,
    CargoStatus,
    CustomerTier,
    TruckLoad,
    TruckProfile,
    TruckStatus,
)
from cargoloader.store import PRIOR_CARGO_STATUS, PRIOR_TRUCK_STATUS, CargoStore
from db.setup import Cargo as DBSQLACargo
from db.setup import Customer as DBSQLACustomer
from db.setup import Truck as DBSQLATruck
from db.setup import TruckLoad as DBSQLATruckLoad
from db.setup import TruckLoadCargo as DBSQLATruckLoadCargo

logger = logging.getLogger(__name__)


class SqlCargoStore(CargoStore):
    """
    CargoStore on a SQLAlchemy engine. Calls made inside `transaction()`
    share one session that is committed at the end of the block or rolled
    back on any exception; calls made outside run in their own short session.
    """

    def __init__(self, engine, id_factory=uuid_load_id):
        self.engine = engine
        self.DBSession = sessionmaker(bind=engine)
        self.id_factory = id_factory
        self._local = threading.local()

    # ====================================================================
    # TRANSACTIONS
    # ====================================================================

    @contextmanager
    def transaction(self):
        outer = getattr(self._local, 'session', None)
        if outer is not None:
            # Nested blocks join the enclosing transaction.
            yield outer
            return

        session = self.DBSession()
        self._local.session = session
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            self._local.session = None
            session.close()

    # ====================================================================
    # READS
    # ====================================================================

    def _to_cargo(self, record, customer_type) -> CargoItem:
        return CargoItem(
            cargo_id=record.id,
            length=record.length,
            width=record.width,
            height=record.height,
            weight=record.weight,
            arrival_date=record.date,
            urgent=record.urgent,
            is_carry_over=record.is_carry_over,
            has_time_limit=record.has_time_limit,
            time_limit_date=record.time_limit_date,
            customer_tier=CustomerTier(customer_type) if customer_type else CustomerTier.NONE,
            status=CargoStatus(record.status),
            name=record.name,
            manufacturer=record.manufacturer,
            quantity=record.quantity,
            category=record.category,
            notes=record.notes or '',
            customer_id=record.customer_id,
            truck_load_id=record.truck_load_id,
        )

    def _to_truck(self, record) -> TruckProfile:
        return TruckProfile(
            name=record.name,
            length=record.length,
            width=record.width,
            height=record.height,
            max_weight=record.max_weight,
            max_volume=record.max_volume,
            self_weight=record.self_weight,
            status=TruckStatus(record.status),
            truck_id=record.id,
        )

    def list_cargo(self, status: CargoStatus | None = None) -> list[CargoItem]:
        with self.transaction() as session:
            query = (session.query(DBSQLACargo, DBSQLACustomer.type)
                     .outerjoin(DBSQLACustomer, DBSQLACargo.customer_id == DBSQLACustomer.id))
            if status is not None:
                query = query.filter(DBSQLACargo.status == CargoStatus(status).value)
            rows = query.order_by(DBSQLACargo.date, DBSQLACargo.id).all()
            return [self._to_cargo(record, customer_type) for record, customer_type in rows]

    def list_trucks(self, status: TruckStatus | None = None) -> list[TruckProfile]:
        with self.transaction() as session:
            query = session.query(DBSQLATruck)
            if status is not None:
                query = query.filter(DBSQLATruck.status == TruckStatus(status).value)
            return [self._to_truck(record) for record in query.order_by(DBSQLATruck.id).all()]

    def list_truck_loads(self) -> list[TruckLoad]:
        """Committed loads, oldest first, with their cargo in link order."""
        cargo_by_id = {c.id: c for c in self.list_cargo()}
        with self.transaction() as session:
            loads = []
            for record in session.query(DBSQLATruckLoad).order_by(DBSQLATruckLoad.created_at,
                                                                   DBSQLATruckLoad.id):
                links = (session.query(DBSQLATruckLoadCargo.cargo_id)
                         .filter_by(truck_load_id=record.id).all())
                truck = truck_profile_from_dict(json.loads(record.truck_type),
                                                reusable=record.truck_id is None)
                truck.truck_id = record.truck_id
                loads.append(TruckLoad(
                    truck,
                    [cargo_by_id[cargo_id] for (cargo_id,) in links],
                    loading_date=record.loading_date,
                    load_id=record.id,
                    forced_overcapacity=record.forced_overcapacity,
                ))
            return loads

    # ====================================================================
    # WRITES
    # ====================================================================

    def add_customer(self, customer_id: str, name: str, tier: CustomerTier):
        with self.transaction() as session:
            session.add(DBSQLACustomer(id=customer_id, name=name, type=CustomerTier(tier).value))

    def add_cargo(self, cargo: CargoItem):
        """Intake: persists a new cargo item with its derived volume and density class."""
        with self.transaction() as session:
            session.add(DBSQLACargo(
                id=cargo.id,
                name=cargo.name,
                manufacturer=cargo.manufacturer,
                quantity=cargo.quantity,
                length=cargo.length,
                width=cargo.width,
                height=cargo.height,
                volume=cargo.volume,
                weight=cargo.weight,
                notes=cargo.notes,
                date=cargo.arrival_date,
                cargo_type=cargo.density_class.value,
                category=cargo.category,
                urgent=cargo.urgent,
                is_carry_over=cargo.is_carry_over,
                has_time_limit=cargo.has_time_limit,
                time_limit_date=cargo.time_limit_date,
                customer_id=cargo.customer_id,
                status=cargo.status.value,
            ))

    def add_truck(self, truck: TruckProfile, truck_id: str):
        with self.transaction() as session:
            session.add(DBSQLATruck(
                id=truck_id,
                name=truck.name,
                length=truck.length,
                width=truck.width,
                height=truck.height,
                max_weight=truck.max_weight,
                max_volume=truck.max_volume,
                self_weight=truck.self_weight,
                status=truck.status.value,
            ))
        truck.truck_id = truck_id

    def create_truck_load(self, truck: TruckProfile, loading_date: date,
                          forced_overcapacity: bool = False) -> str:
        load_id = self.id_factory()
        with self.transaction() as session:
            session.add(DBSQLATruckLoad(
                id=load_id,
                truck_id=truck.truck_id,
                truck_type=json.dumps(truck.to_dict(), ensure_ascii=False),
                loading_date=loading_date,
                forced_overcapacity=forced_overcapacity,
            ))
            session.flush()
        return load_id

    def link_cargo_to_load(self, load_id: str, cargo_id: str):
        with self.transaction() as session:
            sql_cargo = session.get(DBSQLACargo, cargo_id)
            if sql_cargo is None:
                raise LookupError(f"Unknown cargo {cargo_id}")
            session.add(DBSQLATruckLoadCargo(truck_load_id=load_id, cargo_id=cargo_id))
            sql_cargo.truck_load_id = load_id
            session.flush()

    def _transition(self, model, record_id, new_status, prior_status, values):
        with self.transaction() as session:
            query = session.query(model).filter(model.id == record_id)
            if prior_status is not None:
                query = query.filter(model.status == prior_status.value)
            values = dict(values, status=new_status.value)
            if query.update(values, synchronize_session=False) == 0:
                actual = session.query(model.status).filter(model.id == record_id).scalar()
                if actual is None:
                    raise LookupError(f"Unknown {model.__tablename__} record {record_id}")
                raise StaleCargoStatus(record_id, prior_status.value, actual)

    def update_cargo_status(self, cargo_id: str, new_status: CargoStatus):
        new_status = CargoStatus(new_status)
        self._transition(DBSQLACargo, cargo_id, new_status, PRIOR_CARGO_STATUS.get(new_status),
                         {'updated_at': datetime.now()})

    def update_truck_status(self, truck_id: str, new_status: TruckStatus):
        new_status = TruckStatus(new_status)
        self._transition(DBSQLATruck, truck_id, new_status, PRIOR_TRUCK_STATUS.get(new_status), {})

    def set_carry_over(self, cargo_id: str, flag: bool = True):
        with self.transaction() as session:
            updated = (session.query(DBSQLACargo).filter(DBSQLACargo.id == cargo_id)
                       .update({'is_carry_over': flag, 'updated_at': datetime.now()},
                               synchronize_session=False))
            if updated == 0:
                raise LookupError(f"Unknown cargo {cargo_id}")
