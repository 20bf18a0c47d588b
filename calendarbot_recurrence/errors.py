"""Exception hierarchy for the recurrence engine.

Callers can catch RecurrenceEngineError to handle every engine failure, or
the specific subclasses to tell a missing series apart from an operation the
series does not support.
"""


class RecurrenceEngineError(Exception):
    """Base exception for all recurrence engine errors."""


class SeriesNotFoundError(RecurrenceEngineError):
    """An operation referenced a series id that is not in the event store.

    Raised when:
    - Updating or deleting a recurring event that was never added
    - Splitting a series that does not exist

    Fatal to the call; surfaced to the caller unchanged.
    """

    def __init__(self, series_id: str):
        super().__init__(f'No event found with id "{series_id}".')
        self.series_id = series_id


class InvalidSeriesOperationError(RecurrenceEngineError):
    """The requested operation does not apply to the referenced event.

    Raised when:
    - Splitting an event that has no recurrence rule

    Surfaced to the caller, never retried.
    """


class RecurrenceExpansionError(RecurrenceEngineError):
    """Expanding a recurrence pattern failed.

    Treated as a soft failure: the engine logs it and yields zero occurrences
    for the affected series instead of propagating it out of a query.
    """


class RRuleParseError(RecurrenceExpansionError):
    """Error parsing an RRULE string."""


class EventDataError(RecurrenceEngineError):
    """Event or exception data loaded from a document is malformed.

    Raised when:
    - The document top-level is not a mapping
    - An event or exception entry fails validation
    """
