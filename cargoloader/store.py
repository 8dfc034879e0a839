from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date

from cargoloader.models import CargoItem, CargoStatus, TruckProfile, TruckStatus

# Target status -> the status a record must currently have. Targets missing
# here carry no precondition.
PRIOR_CARGO_STATUS = {
    CargoStatus.SHIPPED: CargoStatus.IN_WAREHOUSE,
}
PRIOR_TRUCK_STATUS = {
    TruckStatus.LOADING: TruckStatus.AVAILABLE,
    TruckStatus.DISPATCHED: TruckStatus.LOADING,
}


# --- CargoStore (Abstract Base Class) ---
class CargoStore(ABC):
    """
    The storage collaborator the planner reads candidates from and writes
    committed loads to. The store owns the transaction boundary; the
    planner only sequences calls inside `transaction()`.
    """

    @abstractmethod
    def list_cargo(self, status: CargoStatus | None = None) -> list[CargoItem]:
        pass

    @abstractmethod
    def list_trucks(self, status: TruckStatus | None = None) -> list[TruckProfile]:
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Commits every call made inside the block, or none of them."""
        pass

    @abstractmethod
    def create_truck_load(self, truck: TruckProfile, loading_date: date,
                          forced_overcapacity: bool = False) -> str:
        """Persists a new load record and returns its generated id."""
        pass

    @abstractmethod
    def link_cargo_to_load(self, load_id: str, cargo_id: str):
        pass

    @abstractmethod
    def update_cargo_status(self, cargo_id: str, new_status: CargoStatus):
        """
        Moves cargo one step along warehouse -> shipped. Raises
        StaleCargoStatus if the cargo is not in the expected prior state.
        """
        pass

    @abstractmethod
    def update_truck_status(self, truck_id: str, new_status: TruckStatus):
        """Same optimistic rule as update_cargo_status, for fleet trucks."""
        pass

    @abstractmethod
    def set_carry_over(self, cargo_id: str, flag: bool = True):
        pass
