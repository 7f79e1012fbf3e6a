"""
Error taxonomy for the incident analysis core.

Ingestion raises MalformedFieldError; the analyses raise InvalidInputError
(or NodeNotFoundError for an unknown reachability start). Nothing is retried:
the pipeline halts and the message names the stage and the offending
record or parameter.
"""

from typing import Optional


class IncidentAtlasError(Exception):
    """Base class for errors raised by the analysis core."""
    pass


class MalformedFieldError(IncidentAtlasError, ValueError):
    """Raised when a raw field cannot be parsed into its typed value."""

    def __init__(
        self,
        field: str,
        value: str,
        reason: str = "",
        row_number: Optional[int] = None,
        record_id: Optional[str] = None,
    ):
        self.field = field
        self.value = value
        self.reason = reason
        self.row_number = row_number
        self.record_id = record_id
        super().__init__(self._format())

    def _format(self) -> str:
        msg = f"Malformed field '{self.field}': {self.value!r}"
        if self.reason:
            msg = f"{msg} ({self.reason})"
        location = []
        if self.row_number is not None:
            location.append(f"row {self.row_number}")
        if self.record_id:
            location.append(f"id {self.record_id}")
        if location:
            msg = f"{msg} at {', '.join(location)}"
        return msg

    def at(self, row_number: Optional[int], record_id: Optional[str]) -> "MalformedFieldError":
        """Return a copy of this error annotated with the row it came from."""
        return MalformedFieldError(
            self.field,
            self.value,
            self.reason,
            row_number=row_number,
            record_id=record_id or self.record_id,
        )


class InvalidInputError(IncidentAtlasError, ValueError):
    """Raised when an analysis is called with out-of-bounds parameters."""
    pass


class NodeNotFoundError(InvalidInputError, KeyError):
    """Raised when a reachability query starts from an id absent from the graph."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Start id {node_id!r} is not a node of the adjacency graph")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]
