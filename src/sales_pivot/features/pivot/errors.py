"""Exceptions raised by the pivot report pipeline.

FetchError and ReportCancelledError are fatal and abort a report. CostLookupError
and MalformedRowError are absorbed by the pipeline and surface only as null
margins and skip counters on the finished report."""

from typing import Optional, Sequence


class PivotError(Exception):
    """Base class for pivot pipeline errors."""


class FetchError(PivotError):
    def __init__(self, message: str, offset: Optional[int] = None, limit: Optional[int] = None,
                 page_index: Optional[int] = None):
        super().__init__(message)
        self.offset = offset
        self.limit = limit
        self.page_index = page_index

    @property
    def row_range(self) -> Optional[tuple[int, int]]:
        """Inclusive (first, last) row offsets of the failing page, when known."""
        if self.offset is None or self.limit is None:
            return None
        return self.offset, self.offset + self.limit - 1


class IncompleteFetchError(FetchError):
    """A page returned a different number of rows than the count promised."""


class ReportCancelledError(PivotError):
    """The caller signalled that the report is no longer wanted."""


class CostLookupError(PivotError):
    def __init__(self, message: str, codes: Sequence[str] = ()):
        super().__init__(message)
        self.codes = list(codes)


class MalformedRowError(PivotError):
    def __init__(self, message: str, row=None):
        super().__init__(message)
        self.row = row
