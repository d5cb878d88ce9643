"""Parse and normalize catalog backend responses."""
import json
import logging
import math
import re
from typing import Dict, Any, Iterable, List, Mapping, Optional, Sequence

from libcatalog.models import CatalogRecord, ReadingList, Review

logger = logging.getLogger(__name__)

ID_FIELDS = ("bookId", "id")
RATING_FIELDS = ("rating", "averageRating")
YEAR_FIELDS = ("publishedYear", "publicationYear", "year", "published_date")
COVER_FIELDS = ("coverImage", "coverImageUrl")

_SEPARATORS = re.compile(r"[-_]+")
_WHITESPACE = re.compile(r"\s+")

GENRE_SYNONYMS = {
    "sci fi": "science fiction",
    "scifi": "science fiction",
    "nonfiction": "non fiction",
}


def to_number(value: Any) -> float:
    """
    Coerce a loosely typed numeric field.

    Numbers pass through, numeric strings are parsed as decimals and
    everything else (including parse failures and non-finite results)
    becomes 0.

    Args:
        value: Raw field value

    Returns:
        A finite float
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if "_" in text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    else:
        return 0.0

    return number if math.isfinite(number) else 0.0


def to_text(value: Any) -> str:
    """Render a raw field as a string, with None as the empty string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def first_present(raw: Mapping[str, Any], keys: Sequence[str]) -> Any:
    """Return the value of the first key that is present and not None."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def normalize(raw: Any) -> CatalogRecord:
    """
    Convert a raw book payload into a CatalogRecord.

    Never raises: anything that is not a mapping yields a record with
    every field at its default.

    Args:
        raw: Single book item as returned by the backend

    Returns:
        CatalogRecord
    """
    if not isinstance(raw, Mapping):
        return CatalogRecord(id="")

    return CatalogRecord(
        id=to_text(first_present(raw, ID_FIELDS)),
        title=to_text(raw.get("title")),
        author=to_text(raw.get("author")),
        genre=to_text(raw.get("genre")),
        description=to_text(raw.get("description")),
        cover_image_url=to_text(first_present(raw, COVER_FIELDS)),
        isbn=to_text(raw.get("isbn")),
        rating=to_number(first_present(raw, RATING_FIELDS)),
        published_year=int(to_number(first_present(raw, YEAR_FIELDS)))
    )


def normalize_genre(genre: Optional[str]) -> str:
    """
    Build the comparison key for a genre string.

    Only used for equality checks; display keeps the original text.

    Args:
        genre: Genre as entered or as stored

    Returns:
        Lowercased key with separators collapsed and synonyms folded
    """
    key = (genre or "").lower().strip()
    key = _SEPARATORS.sub(" ", key)
    key = _WHITESPACE.sub(" ", key)
    return GENRE_SYNONYMS.get(key, key)


def unwrap_body(payload: Any) -> Any:
    """
    Strip the API gateway envelope from a response payload.

    The backend sometimes answers ``{"body": "<json>"}`` or
    ``{"body": {...}}`` instead of the bare value.

    Args:
        payload: Decoded JSON response

    Returns:
        The inner value
    """
    if isinstance(payload, Mapping) and payload.get("body"):
        body = payload["body"]
        if isinstance(body, str):
            return json.loads(body)
        return body
    return payload


def _unwrap_list(response_json: Any, kind: str) -> List[Any]:
    try:
        items = unwrap_body(response_json)
    except ValueError as e:
        logger.warning(f"Could not decode {kind} response body: {e}")
        return []
    if not isinstance(items, list):
        logger.warning(f"Expected a list of {kind}, got {type(items).__name__}")
        return []
    return items


def parse_books_response(response_json: Any) -> List[CatalogRecord]:
    """
    Parse a full book listing.

    Args:
        response_json: List of raw books, possibly wrapped in an envelope

    Returns:
        List of CatalogRecord objects (empty if the payload is not a list)
    """
    items = _unwrap_list(response_json, "books")

    return deduplicate_books(normalize(item) for item in items)


def deduplicate_books(books: Iterable[CatalogRecord]) -> List[CatalogRecord]:
    """
    Remove duplicate books by ID.

    Args:
        books: CatalogRecord objects

    Returns:
        Deduplicated list of books, first occurrence wins
    """
    seen_ids = set()
    unique_books = []

    for book in books:
        if book.id not in seen_ids:
            seen_ids.add(book.id)
            unique_books.append(book)

    return unique_books


def parse_review(item: Dict[str, Any]) -> Review:
    """Parse one review item; its id is ``<bookId>#<createdAt>``."""
    book_id = to_text(item.get("bookId"))
    created_at = to_text(item.get("createdAt"))
    return Review(
        id=f"{book_id}#{created_at}",
        book_id=book_id,
        user_id=to_text(item.get("userId")),
        user_name=to_text(item.get("userName")),
        rating=to_number(item.get("rating")),
        comment=to_text(item.get("comment")),
        created_at=created_at,
        is_admin=item.get("isAdmin") is True
    )


def parse_reviews_response(response_json: Any) -> List[Review]:
    items = _unwrap_list(response_json, "reviews")
    return [parse_review(item) for item in items if isinstance(item, Mapping)]


def parse_reading_list(item: Dict[str, Any]) -> ReadingList:
    book_ids = item.get("bookIds") or []
    if not isinstance(book_ids, list):
        book_ids = []

    return ReadingList(
        id=to_text(item.get("id")),
        user_id=to_text(item.get("userId")),
        name=to_text(item.get("name")),
        description=to_text(item.get("description")),
        book_ids=[to_text(b) for b in book_ids],
        created_at=to_text(item.get("createdAt")),
        updated_at=to_text(item.get("updatedAt"))
    )


def parse_reading_lists_response(response_json: Any) -> List[ReadingList]:
    items = _unwrap_list(response_json, "reading lists")
    return [parse_reading_list(item) for item in items if isinstance(item, Mapping)]
