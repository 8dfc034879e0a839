# cargoloader/errors.py


class LoadPlanningError(Exception):
    """Base class for every error raised by the loading engine."""


# --- Input validation ---

class InvalidCargo(LoadPlanningError, ValueError):
    """A cargo item failed validation at creation time."""


class InvalidDimension(InvalidCargo):
    """A length, width or height was zero or negative."""


class InvalidTruckProfile(LoadPlanningError, ValueError):
    """A truck profile's capacity fields are inconsistent."""


class UnknownStrategy(LoadPlanningError, ValueError):
    """No packing strategy is registered under the requested name."""


# --- Preconditions of planLoading ---

class EmptyCandidateSet(LoadPlanningError):
    """No candidate cargo was supplied."""


class NoAvailableTrucks(LoadPlanningError):
    """No truck in 'available' status was supplied."""


# --- Persistence phase ---

class StaleCargoStatus(LoadPlanningError):
    """
    Raised by the store when a status transition no longer applies, e.g. the
    cargo was shipped by a concurrent run after this plan read it.
    """

    def __init__(self, record_id, expected, actual=None):
        self.record_id = record_id
        self.expected = expected
        self.actual = actual
        message = f"{record_id} is no longer '{expected}'"
        if actual is not None:
            message += f" (now '{actual}')"
        super().__init__(message)


class PersistenceFailure(LoadPlanningError):
    """
    One truck load could not be committed. The store rolled the load back;
    its cargo is reported as unassigned.
    """

    def __init__(self, load, cause):
        self.load = load
        self.cause = cause
        super().__init__(
            f"Failed to persist load on '{load.truck.name}' "
            f"({len(load.cargos)} cargo): {cause}"
        )

    @property
    def cargo_ids(self) -> list[str]:
        return [c.id for c in self.load.cargos]


# --- Warnings ---

class ForcedOvercapacity(UserWarning):
    """
    The fallback path put a single cargo item on a truck that could not
    admit it under the normal capacity rules. Collected, never raised.
    """

    def __init__(self, truck, cargo):
        self.truck = truck
        self.cargo = cargo
        super().__init__(
            f"Cargo {cargo.id} ({cargo.weight:.2f} t, {cargo.volume:.2f} m3) "
            f"forced onto '{truck.name}' "
            f"(limit {truck.weight_capacity:.2f} t, {truck.max_volume:.2f} m3)"
        )
