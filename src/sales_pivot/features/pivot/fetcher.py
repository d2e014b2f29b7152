"""
Batch fetching of raw transaction rows.

The hosted store caps every response (see ``HOST_RESPONSE_ROW_CEILING``), so a
report first counts the matching rows and then reads them in pages of
``FETCH_PAGE_SIZE``. Pages run under a semaphore, ``FETCH_CONCURRENCY`` at a
time, and the fetch is all or nothing: the first failing page cancels the
others and nothing partial reaches the pivot builder.

There is no upper bound on the number of pages unless the caller passes
``max_pages``; very wide date ranges have to be guarded by the caller.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Awaitable, Iterable, List, Optional, Tuple, TypeVar

from pydantic import ValidationError

from ...core.config import FETCH_CONCURRENCY, FETCH_PAGE_SIZE, HOST_RESPONSE_ROW_CEILING
from .errors import FetchError, IncompleteFetchError, MalformedRowError, PivotError, ReportCancelledError
from .schemas import FetchPredicate, RawTransactionRow
from .stores import RawRow, TransactionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FetchResult:
    rows: List[RawTransactionRow] = field(default_factory=list)
    total_count: int = 0
    page_count: int = 0
    skipped_row_count: int = 0


def raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ReportCancelledError("Report was cancelled")


async def await_unless_cancelled(awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event]) -> T:
    """Awaits ``awaitable`` but abandons it as soon as ``cancel_event`` is set."""
    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise ReportCancelledError("Report was cancelled")

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
    if task in done:
        return task.result()
    raise ReportCancelledError("Report was cancelled while a request was in flight")


def page_ranges(count: int, page_size: int) -> List[Tuple[int, int]]:
    """(offset, limit) of every page needed to read ``count`` rows."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    pages = math.ceil(count / page_size)
    return [(i * page_size, min(page_size, count - i * page_size)) for i in range(pages)]


def parse_row(raw: RawRow) -> RawTransactionRow:
    if isinstance(raw, RawTransactionRow):
        return raw
    try:
        return RawTransactionRow.model_validate(raw)
    except ValidationError as e:
        raise MalformedRowError(f"Invalid transaction row: {e.error_count()} validation error(s)", row=raw) from e


def parse_rows(raw_rows: Iterable[RawRow]) -> Tuple[List[RawTransactionRow], int]:
    """Validates rows at the fetch boundary. Returns (valid rows, number skipped)."""
    rows: List[RawTransactionRow] = []
    skipped = 0
    for raw in raw_rows:
        try:
            rows.append(parse_row(raw))
        except MalformedRowError as e:
            skipped += 1
            logger.debug(f"Skipping malformed row: {e}")
    return rows, skipped


class BatchFetcher:
    def __init__(self, store: TransactionStore, page_size: int = FETCH_PAGE_SIZE,
                 concurrency: int = FETCH_CONCURRENCY, max_pages: Optional[int] = None):
        if not 0 < page_size <= HOST_RESPONSE_ROW_CEILING:
            raise ValueError(f"page_size must be between 1 and {HOST_RESPONSE_ROW_CEILING}")
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.store = store
        self.page_size = page_size
        self.concurrency = concurrency
        self.max_pages = max_pages

    async def fetch_all(self, predicate: FetchPredicate,
                        cancel_event: Optional[asyncio.Event] = None) -> FetchResult:
        """
        Reads every row matching ``predicate``.

        Returns:
            FetchResult: validated rows in store order, the count reported by the
            store, the number of pages read and the number of rows that failed
            validation.

        Raises:
            FetchError: the count or any page query failed, or a page came back
                with a different number of rows than the count promised.
            ReportCancelledError: ``cancel_event`` was set before the fetch finished.
        """
        raise_if_cancelled(cancel_event)
        try:
            count = await await_unless_cancelled(self.store.count(predicate), cancel_event)
        except PivotError:
            raise
        except Exception as e:
            logger.error(f"Count query failed: {e}")
            raise FetchError(f"Count query failed: {e}") from e

        if count is None or count < 0:
            raise FetchError(f"Store returned an invalid row count: {count!r}")
        if count == 0:
            logger.info("No transaction rows match the report filters")
            return FetchResult()

        ranges = page_ranges(count, self.page_size)
        if self.max_pages is not None and len(ranges) > self.max_pages:
            raise FetchError(
                f"{count} rows need {len(ranges)} pages, more than the allowed {self.max_pages}"
            )
        logger.info(f"Fetching {count} rows in {len(ranges)} batch(es) of up to {self.page_size}")

        pages: List[Optional[list]] = [None] * len(ranges)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _fetch_page(index: int, offset: int, limit: int) -> None:
            async with semaphore:
                raise_if_cancelled(cancel_event)
                logger.debug(f"Fetching batch {index + 1}/{len(ranges)} (records {offset}-{offset + limit - 1})")
                try:
                    batch = await await_unless_cancelled(
                        self.store.fetch_rows(predicate, offset, limit), cancel_event
                    )
                except PivotError:
                    raise
                except Exception as e:
                    logger.error(f"Error fetching batch {index + 1} (records {offset}-{offset + limit - 1}): {e}")
                    raise FetchError(
                        f"Failed to fetch records {offset}-{offset + limit - 1}: {e}",
                        offset=offset, limit=limit, page_index=index,
                    ) from e
                batch = list(batch or [])
                if len(batch) != limit:
                    raise IncompleteFetchError(
                        f"Batch {index + 1} returned {len(batch)} rows, expected {limit}",
                        offset=offset, limit=limit, page_index=index,
                    )
                pages[index] = batch

        try:
            async with asyncio.TaskGroup() as tg:
                for index, (offset, limit) in enumerate(ranges):
                    tg.create_task(_fetch_page(index, offset, limit))
        except ExceptionGroup as eg:
            # Surface the first pipeline error rather than the group
            for exc in eg.exceptions:
                if isinstance(exc, PivotError):
                    raise exc
            raise

        rows, skipped = parse_rows(raw for page in pages for raw in page)
        if skipped:
            logger.warning(f"Skipped {skipped} of {count} rows that failed validation")
        return FetchResult(rows=rows, total_count=count, page_count=len(ranges), skipped_row_count=skipped)
