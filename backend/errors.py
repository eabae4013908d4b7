"""Exceptions and reportable faults for famgrid."""

from dataclasses import dataclass


class FamgridError(Exception):
    """Base exception for all famgrid errors."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class LayoutError(FamgridError):
    """The layout run could not produce a grid."""


class EmptyGraphError(LayoutError):
    """No individual could be used as the traversal anchor."""

    def __init__(self, details: str | None = None) -> None:
        super().__init__("Nothing to display", details)


class TraversalBoundError(LayoutError):
    """A parent walk exceeded its step bound (cyclic FAMC chain or broken parent links)."""

    def __init__(self, start_id: str | None, steps: int) -> None:
        super().__init__(
            "ERROR",
            f"walk from {start_id or 'record'} did not terminate after {steps} steps",
        )
        self.start_id = start_id
        self.steps = steps


class InvalidMutationError(FamgridError):
    """A mutation was requested on a selection it does not apply to."""


class AdapterError(FamgridError):
    """An import or export adapter could not convert its input."""


@dataclass(frozen=True)
class DanglingReference:
    """A relationship pointer whose target is missing from the graph index."""

    missing_id: str
    referrer_id: str | None
    tag: str

    @property
    def message(self) -> str:
        return (
            f"Error in loaded data: no level 0 record found with id {self.missing_id} "
            f"(referenced by {self.tag} of {self.referrer_id})"
        )

    def to_dict(self) -> dict[str, str | None]:
        return {
            "missingId": self.missing_id,
            "referrerId": self.referrer_id,
            "tag": self.tag,
            "message": self.message,
        }
