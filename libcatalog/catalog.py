"""Catalog filter engine and derived option lists."""
import logging
import unicodedata
from functools import lru_cache
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from libcatalog.models import CatalogRecord, FilterQuery, SortKey
from libcatalog.parse import normalize, normalize_genre

logger = logging.getLogger(__name__)


def _collation_key(text: str) -> Tuple[str, str]:
    """Locale-style key: accents and case are secondary to the base letters."""
    folded = unicodedata.normalize("NFKD", text).casefold()
    return folded, text


def _as_records(records: Iterable[Any]) -> List[CatalogRecord]:
    return [r if isinstance(r, CatalogRecord) else normalize(r) for r in records]


def genre_options(records: Iterable[CatalogRecord]) -> List[str]:
    """
    Distinct genres for a filter control.

    Args:
        records: Current collection

    Returns:
        Trimmed, non-empty genres in their original casing, ascending
    """
    genres = {r.genre.strip() for r in records if r.genre and r.genre.strip()}
    return sorted(genres, key=_collation_key)


def year_options(records: Iterable[CatalogRecord]) -> List[int]:
    """Distinct positive publication years, most recent first."""
    return sorted({r.published_year for r in records if r.published_year > 0}, reverse=True)


def _matches_search(record: CatalogRecord, needle: str) -> bool:
    return (
        needle in record.title.lower()
        or needle in record.author.lower()
        or needle in record.genre.lower()
    )


def sort_records(records: List[CatalogRecord], sort_key: SortKey) -> List[CatalogRecord]:
    """
    Stable sort by one of the catalog sort keys.

    Title and author ascend by collation order (empty first); rating and
    year descend. Ties keep their input order.
    """
    if sort_key == SortKey.TITLE:
        return sorted(records, key=lambda r: _collation_key(r.title))
    if sort_key == SortKey.AUTHOR:
        return sorted(records, key=lambda r: _collation_key(r.author))
    if sort_key == SortKey.RATING:
        return sorted(records, key=lambda r: r.rating, reverse=True)
    if sort_key == SortKey.YEAR:
        return sorted(records, key=lambda r: r.published_year, reverse=True)
    return list(records)


def apply_filters(records: Iterable[Any], query: FilterQuery) -> List[CatalogRecord]:
    """
    Evaluate a filter query against a collection.

    All constraints are conjunctive. The input is never mutated and the
    function never raises: entries that are not CatalogRecords are
    normalized first, and constraints that cannot be evaluated simply
    do not match.

    Args:
        records: Catalog records (or raw payloads)
        query: Filter and sort inputs

    Returns:
        New ordered list of matching records
    """
    result = _as_records(records)

    needle = (query.search_text or "").strip().lower()
    if needle:
        result = [r for r in result if _matches_search(r, needle)]

    if query.genre:
        wanted = normalize_genre(query.genre)
        result = [r for r in result if normalize_genre(r.genre) == wanted]

    if query.min_rating is not None:
        result = [r for r in result if r.rating >= query.min_rating]

    if query.year is not None:
        result = [r for r in result if r.published_year == query.year]

    return sort_records(result, query.sort_key)


@lru_cache(maxsize=64)
def _cached_filter(records: Tuple[CatalogRecord, ...], query: FilterQuery) -> Tuple[CatalogRecord, ...]:
    return tuple(apply_filters(records, query))


class CatalogView:
    """In-memory collection behind a catalog screen.

    Derived option lists are recomputed on every change to the collection;
    filtered views are memoized on ``(records, query)``.
    """

    def __init__(self, records: Optional[Iterable[Any]] = None):
        self._records: Tuple[CatalogRecord, ...] = ()
        self._genre_options: List[str] = []
        self._year_options: List[int] = []
        self.replace_all(records or [])

    @property
    def records(self) -> Tuple[CatalogRecord, ...]:
        return self._records

    @property
    def genre_options(self) -> List[str]:
        return list(self._genre_options)

    @property
    def year_options(self) -> List[int]:
        return list(self._year_options)

    def __len__(self) -> int:
        return len(self._records)

    def _set(self, records: Sequence[CatalogRecord]):
        self._records = tuple(records)
        self._genre_options = genre_options(self._records)
        self._year_options = year_options(self._records)

    def replace_all(self, records: Iterable[Any]):
        """Swap in a freshly loaded collection."""
        self._set(_as_records(records))
        logger.info(f"Catalog loaded with {len(self._records)} books")

    def get(self, book_id: str) -> Optional[CatalogRecord]:
        return next((r for r in self._records if r.id == book_id), None)

    def upsert(self, raw: Any) -> CatalogRecord:
        """
        Apply a created or updated book to the collection.

        A record with the same id is replaced in place; otherwise the
        record is appended.

        Args:
            raw: Book payload returned by the backend

        Returns:
            The normalized record
        """
        record = raw if isinstance(raw, CatalogRecord) else normalize(raw)
        records = list(self._records)
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                break
        else:
            records.append(record)
        self._set(records)
        return record

    def remove(self, book_id: str) -> bool:
        """Drop a book by id; returns whether anything was removed."""
        remaining = [r for r in self._records if r.id != book_id]
        removed = len(remaining) != len(self._records)
        if removed:
            self._set(remaining)
        return removed

    def filtered(self, query: FilterQuery) -> List[CatalogRecord]:
        return list(_cached_filter(self._records, query))
