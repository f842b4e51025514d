"""Error taxonomy shared by the rule loader, slot generator and booking coordinator.

Routes translate these into HTTP responses; nothing below the route layer
knows about status codes.
"""


class SlotBookError(Exception):
    """Base class for all domain errors."""


class ConfigurationError(SlotBookError):
    """A rule document is malformed, missing or contradicts another rule.

    Fatal to the generation run that hit it. Never defaulted around.
    """


class ConflictError(SlotBookError):
    """The slot or booking is no longer in a state that allows the request.

    An expected outcome under contention: the customer picks another slot.
    """

    def __init__(self, message: str, code: str = "slot_unavailable"):
        self.code = code
        super().__init__(message)


class SlotNotFoundError(SlotBookError):
    """No slot with the requested id."""


class BookingNotFoundError(SlotBookError):
    """No booking with the requested id."""


class ExternalServiceError(SlotBookError):
    """The payment provider could not be reached or rejected the request.

    The reservation is rolled back; the caller may retry.
    """


class IntegrityViolation(SlotBookError):
    """A double sale or overlapping slot was detected.

    This means concurrency control failed somewhere. Always surfaced, never handled.
    """
