"""Data models for the library catalog."""
import math
from decimal import Decimal, ROUND_HALF_UP
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, List, TypedDict, Union


Number = Union[int, float, str, None]


class RawBookRecord(TypedDict, total=False):
    """Every field spelling the backend is known to send for a book.

    Numbers may arrive either as numbers or as numeric strings.
    """
    bookId: Union[str, int]
    id: Union[str, int]
    title: str
    author: str
    genre: str
    description: str
    coverImage: str
    coverImageUrl: str
    isbn: str
    rating: Number
    averageRating: Number
    publishedYear: Number
    publicationYear: Number
    year: Number
    published_date: Number


@dataclass(frozen=True)
class CatalogRecord:
    """Canonical book representation used by the filter engine."""
    id: str
    title: str = ""
    author: str = ""
    genre: str = ""
    description: str = ""
    cover_image_url: str = ""
    isbn: str = ""
    rating: float = 0.0
    published_year: int = 0

    def to_dict(self) -> dict:
        """Render the record with the field names the backend expects."""
        return {
            "bookId": self.id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "description": self.description,
            "coverImage": self.cover_image_url,
            "isbn": self.isbn,
            "rating": self.rating,
            "publishedYear": self.published_year,
        }


class SortKey(str, Enum):
    TITLE = "title"
    AUTHOR = "author"
    RATING = "rating"
    YEAR = "year"


def _parse_optional_number(value) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        # Unparseable constraints match nothing
        return math.nan


def _parse_sort_key(value) -> SortKey:
    if isinstance(value, SortKey):
        return value
    try:
        return SortKey(str(value or "title").strip().lower())
    except ValueError:
        return SortKey.TITLE


@dataclass(frozen=True)
class FilterQuery:
    """One set of catalog filter inputs.

    Empty ``search_text``/``genre`` and ``None`` bounds mean "no constraint".
    """
    search_text: str = ""
    genre: str = ""
    min_rating: Optional[float] = None
    year: Optional[float] = None
    sort_key: SortKey = SortKey.TITLE

    def __post_init__(self):
        # Bounds may arrive as raw form values; "" means no constraint
        object.__setattr__(self, "search_text", self.search_text or "")
        object.__setattr__(self, "genre", self.genre or "")
        object.__setattr__(self, "min_rating", _parse_optional_number(self.min_rating))
        object.__setattr__(self, "year", _parse_optional_number(self.year))
        object.__setattr__(self, "sort_key", _parse_sort_key(self.sort_key))

    @classmethod
    def from_form(
        cls,
        query: str = "",
        genre: str = "",
        rating: Number = "",
        year: Number = "",
        sort: str = "title"
    ) -> "FilterQuery":
        """
        Build a query from raw form values.

        Args:
            query: Free text search
            genre: Selected genre, as displayed
            rating: Minimum rating, possibly as a string
            year: Publication year, possibly as a string
            sort: Sort key name

        Returns:
            FilterQuery
        """
        return cls(
            search_text=query,
            genre=genre,
            min_rating=rating,
            year=year,
            sort_key=sort
        )


@dataclass(frozen=True)
class ReadingList:
    """A user's named list of books."""
    id: str
    user_id: str = ""
    name: str = ""
    description: str = ""
    book_ids: List[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def with_book(self, book_id: str) -> "ReadingList":
        """Return a copy of the list with ``book_id`` appended."""
        if book_id in self.book_ids:
            raise ValueError("This book is already in the list")
        return replace(self, book_ids=[*self.book_ids, book_id])

    def without_book(self, book_id: str) -> "ReadingList":
        return replace(self, book_ids=[b for b in self.book_ids if b != book_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "description": self.description,
            "bookIds": list(self.book_ids),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class Review:
    """A single review of a book."""
    id: str
    book_id: str
    user_id: str
    user_name: str = ""
    rating: float = 0.0
    comment: str = ""
    created_at: str = ""
    is_admin: bool = False

    @property
    def display_name(self) -> str:
        return self.user_name.strip() or "User"

    @property
    def show_admin_badge(self) -> bool:
        """Whether the reviewer was an administrator when the review was written."""
        return self.is_admin


def average_review_rating(reviews: List[Review]) -> Optional[float]:
    """Mean review rating rounded to one decimal, or None without reviews."""
    if not reviews:
        return None
    total = sum(r.rating or 0 for r in reviews)
    # Half-up, so 2.25 shows as 2.3
    mean = Decimal(total / len(reviews)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return float(mean)


def clamp_review_rating(value: Number) -> int:
    """Round a submitted star rating to a whole star and clamp it into 1..5."""
    parsed = _parse_optional_number(value)
    if parsed is None or math.isnan(parsed):
        return 1
    bounded = max(1.0, min(5.0, parsed))
    return int(Decimal(bounded).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
