class CapacityEngineError(Exception):
    """Base class for capacity and booking errors."""


class NotFoundError(CapacityEngineError):
    """A time slot, booking or location does not exist."""


class InvalidStateError(CapacityEngineError):
    """Inactive slot, slot not active on the day, or booking not cancellable."""


class BookingValidationError(CapacityEngineError):
    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("Validation failed: " + ", ".join(self.errors))


class CapacityExceededError(CapacityEngineError):
    def __init__(self, *, requested: int, available: int, current: int, maximum: int, label: str = "") -> None:
        self.requested = requested
        self.available = available
        self.current = current
        self.maximum = maximum
        target = f" for {label}" if label else ""
        super().__init__(
            f"Cannot book {requested} visitor(s). Only {available} spot(s) available{target}. "
            f"(Current: {current}/{maximum})"
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "requested": self.requested,
            "available": self.available,
            "current": self.current,
            "max": self.maximum,
        }


class DuplicateBookingError(CapacityEngineError):
    """The invitation already has an active booking."""


class CollaboratorError(CapacityEngineError):
    """Unexpected failure in storage or another collaborator."""
