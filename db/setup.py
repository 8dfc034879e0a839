import logging
import os
from datetime import date, datetime, timedelta

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from cargoloader.models import classify_density

logger = logging.getLogger(__name__)

# 1. Database Configuration and Base
DATABASE_URL = os.environ.get('CARGOLOADER_DATABASE_URL', 'sqlite:///warehouse.db')
Base = declarative_base()

# 2. Table Definitions (Declarative Base)

class Customer(Base):
    """Customers own cargo; their tier feeds the priority score."""
    __tablename__ = 'customers'

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # 'large', 'medium', 'small'
    contact_info = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

class Cargo(Base):
    """Defines the current state of a cargo item in the warehouse."""
    __tablename__ = 'cargo'

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, default='')
    manufacturer = Column(String, nullable=False, default='')
    quantity = Column(Integer, nullable=False, default=1)
    length = Column(Float, nullable=False)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    volume = Column(Float, nullable=False)
    weight = Column(Float, nullable=False)
    notes = Column(Text, nullable=True)
    date = Column(Date, nullable=False)  # arrival date
    cargo_type = Column(String, nullable=False)  # density class
    category = Column(String, nullable=False, default='')
    urgent = Column(Boolean, default=False, nullable=False)
    is_carry_over = Column(Boolean, default=False, nullable=False)
    has_time_limit = Column(Boolean, default=False, nullable=False)
    time_limit_date = Column(Date, nullable=True)
    customer_id = Column(String, ForeignKey('customers.id'), nullable=True)
    status = Column(String, default='warehouse', nullable=False)

    # Back-reference kept after shipping
    truck_load_id = Column(String, ForeignKey('truck_loads.id'), nullable=True)

    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, nullable=False)

class Truck(Base):
    """Fleet vehicles. Only 'available' trucks are offered to the planner."""
    __tablename__ = 'trucks'

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    length = Column(Float, nullable=True)
    width = Column(Float, nullable=True)
    height = Column(Float, nullable=True)
    max_weight = Column(Float, nullable=False)
    max_volume = Column(Float, nullable=False)
    self_weight = Column(Float, default=0.0, nullable=False)
    status = Column(String, default='available', nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

class TruckLoad(Base):
    """One committed shipment: a truck profile snapshot plus its loading date."""
    __tablename__ = 'truck_loads'

    id = Column(String, primary_key=True)
    truck_id = Column(String, ForeignKey('trucks.id'), nullable=True)  # NULL for catalog trucks
    truck_type = Column(Text, nullable=False)  # JSON snapshot of the profile used
    loading_date = Column(Date, nullable=False)
    forced_overcapacity = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

class TruckLoadCargo(Base):
    """Truck load <-> cargo link table."""
    __tablename__ = 'truck_load_cargo'

    truck_load_id = Column(String, ForeignKey('truck_loads.id'), primary_key=True)
    cargo_id = Column(String, ForeignKey('cargo.id'), primary_key=True)


# 3. Setup and Seeding Functions

def make_engine(url: str = DATABASE_URL):
    """
    File databases get NullPool to avoid 'database is locked' errors; an
    in-memory SQLite database must share one connection to survive.
    """
    if url in ('sqlite://', 'sqlite:///:memory:'):
        return create_engine(url, poolclass=StaticPool, connect_args={'check_same_thread': False})
    return create_engine(url, poolclass=NullPool)

def initialize_db(engine=None, seed: bool = True):
    """Creates the database tables and seeds demo data into an empty database."""
    if engine is None:
        engine = make_engine(DATABASE_URL)
    logger.info("Creating database schema at %s", engine.url)
    Base.metadata.create_all(engine)

    if seed:
        DBSession = sessionmaker(bind=engine)
        session = DBSession()
        try:
            if session.query(Cargo).count() == 0:
                seed_data(session)
        finally:
            session.close()
    return engine

def seed_data(session, today: date | None = None):
    """Inserts demo customers, a small fleet and warehouse cargo."""
    today = today or date.today()

    customers_data = [
        Customer(id='C001', name='Northwind Retail', type='large'),
        Customer(id='C002', name='Harbor Supplies', type='medium'),
        Customer(id='C003', name='Corner Hardware', type='small'),
    ]

    trucks_data = [
        Truck(id='T001', name='LOGI-001', length=4.2, width=2.0, height=1.8,
              max_weight=6.5, max_volume=15.12, self_weight=1.5),
        Truck(id='T002', name='LOGI-002', length=7.6, width=2.3, height=2.4,
              max_weight=19.0, max_volume=41.952, self_weight=4.0),
        Truck(id='T003', name='LOGI-003', length=2.7, width=1.5, height=1.4,
              max_weight=2.5, max_volume=5.67, self_weight=1.0, status='maintenance'),
    ]

    def cargo(cargo_id, name, l, w, h, weight, days_ago, customer_id=None, **flags):
        volume = l * w * h
        return Cargo(id=cargo_id, name=name, length=l, width=w, height=h, volume=volume,
                     weight=weight, date=today - timedelta(days=days_ago),
                     cargo_type=classify_density(weight, volume).value,
                     customer_id=customer_id, **flags)

    cargo_data = [
        cargo('G001', 'Steel fittings', 1.2, 1.0, 0.8, 1.8, 5, 'C002'),
        cargo('G002', 'Office chairs', 2.0, 1.2, 1.5, 0.4, 2, 'C001', urgent=True),
        cargo('G003', 'Ceramic tiles', 1.0, 1.0, 0.6, 2.4, 12, 'C003'),
        cargo('G004', 'Paper rolls', 1.5, 1.5, 1.2, 1.1, 1, 'C001',
              has_time_limit=True, time_limit_date=today + timedelta(days=2)),
        cargo('G005', 'Spare parts', 0.8, 0.6, 0.6, 0.3, 40, None, is_carry_over=True),
        cargo('G006', 'Insulation foam', 2.4, 1.8, 1.6, 0.35, 3, 'C002'),
        cargo('G007', 'Cement bags', 1.2, 1.0, 1.0, 3.5, 7, 'C003'),
        cargo('G008', 'Generator', 1.8, 1.1, 1.3, 9.0, 0, 'C001',
              has_time_limit=True, time_limit_date=today - timedelta(days=1)),
    ]

    try:
        session.add_all(customers_data)
        session.add_all(trucks_data)
        session.add_all(cargo_data)
        session.commit()
        logger.info("Seeded %d customers, %d trucks, %d cargo.",
                    len(customers_data), len(trucks_data), len(cargo_data))
    except Exception:
        session.rollback()
        logger.exception("Error during seeding")
        raise

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    initialize_db()
