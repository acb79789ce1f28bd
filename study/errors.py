"""Error taxonomy for the scheduling engine."""


class SchedulingError(Exception):
    """Base class for every error the engine raises on purpose."""


class InvalidQualityError(SchedulingError, ValueError):
    """A grade outside the recognized ReviewQuality set."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Quality must be one of 0-5 or a ReviewQuality name, got {value!r}")


class RecordNotFoundError(SchedulingError, KeyError):
    """No memory state stored for (user_id, card_id)."""

    def __init__(self, user_id: str, card_id: str):
        self.user_id = user_id
        self.card_id = card_id
        super().__init__(f"No progress for user={user_id} card={card_id}")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class ConcurrentModificationError(SchedulingError):
    """Optimistic-concurrency conflict: the stored version moved on."""

    def __init__(self, user_id: str, card_id: str, expected_version: int, actual_version: int | None = None):
        self.user_id = user_id
        self.card_id = card_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict for user={user_id} card={card_id}: "
            f"expected {expected_version}, found {actual_version}"
        )


class StoreUnavailableError(SchedulingError):
    """The progress store could not be reached or read."""
