import os

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite://./sales_pivot.sqlite3")

# The hosted transaction store never returns more than this many rows per response.
HOST_RESPONSE_ROW_CEILING: int = 1000
FETCH_PAGE_SIZE: int = int(os.getenv("FETCH_PAGE_SIZE", "800"))
if not 0 < FETCH_PAGE_SIZE <= HOST_RESPONSE_ROW_CEILING:
    raise ValueError(
        f"FETCH_PAGE_SIZE must be between 1 and {HOST_RESPONSE_ROW_CEILING}, got {FETCH_PAGE_SIZE}"
    )

# 1 fetches pages strictly one after another.
FETCH_CONCURRENCY: int = int(os.getenv("FETCH_CONCURRENCY", "4"))
COST_LOOKUP_CHUNK_SIZE: int = int(os.getenv("COST_LOOKUP_CHUNK_SIZE", "200"))

REPORT_CACHE_MAX_AGE_SECONDS: float = float(os.getenv("REPORT_CACHE_MAX_AGE_SECONDS", "300"))
REPORT_CACHE_MAX_ENTRIES: int = int(os.getenv("REPORT_CACHE_MAX_ENTRIES", "64"))
