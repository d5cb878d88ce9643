"""Tests for the catalog filter engine."""
import math

import pytest

from libcatalog.catalog import CatalogView, apply_filters, genre_options, year_options
from libcatalog.models import CatalogRecord, FilterQuery, SortKey
from libcatalog.parse import normalize


@pytest.fixture
def classics():
    return [
        normalize({"bookId": "1", "title": "Dune", "author": "Frank Herbert",
                   "genre": "Sci-Fi", "rating": 4.8, "year": 1965}),
        normalize({"bookId": "2", "title": "Emma", "author": "Jane Austen",
                   "genre": "Romance", "rating": 4.1, "year": 1815}),
    ]


@pytest.fixture
def shelf():
    return [
        CatalogRecord("a", "Neuromancer", "William Gibson", "science fiction", rating=4.0, published_year=1984),
        CatalogRecord("b", "Sapiens", "Yuval Noah Harari", "Non-Fiction", rating=4.5, published_year=2011),
        CatalogRecord("c", "Foundation", "Isaac Asimov", "SciFi", rating=4.5, published_year=1951),
        CatalogRecord("d", "", "", "", rating=0, published_year=0),
        CatalogRecord("e", "educated", "Tara Westover", " nonfiction ", rating=4.7, published_year=2018),
    ]


def titles(records):
    return [r.title for r in records]


def test_genre_filter_scenario(classics):
    """Test that a synonym spelling of the genre matches."""
    result = apply_filters(classics, FilterQuery(genre="sci fi"))
    assert titles(result) == ["Dune"]


def test_search_scenario(classics):
    """Test case-insensitive title search."""
    result = apply_filters(classics, FilterQuery(search_text="dune"))
    assert titles(result) == ["Dune"]


def test_search_matches_author_and_genre(classics):
    """Test that search covers author and genre, after trimming."""
    assert titles(apply_filters(classics, FilterQuery(search_text="  AUSTEN "))) == ["Emma"]
    assert titles(apply_filters(classics, FilterQuery(search_text="sci-"))) == ["Dune"]
    assert titles(apply_filters(classics, FilterQuery(search_text="   "))) == ["Dune", "Emma"]


def test_min_rating_is_inclusive(classics):
    """Test the lower bound on rating."""
    assert titles(apply_filters(classics, FilterQuery(min_rating=4.1))) == ["Dune", "Emma"]
    assert titles(apply_filters(classics, FilterQuery(min_rating=4.2))) == ["Dune"]


def test_year_is_exact(classics):
    """Test exact year matching."""
    assert titles(apply_filters(classics, FilterQuery(year=1815))) == ["Emma"]
    assert apply_filters(classics, FilterQuery(year=1816)) == []


def test_filters_are_conjunctive(shelf):
    """Test that combined constraints equal the intersection of each one."""
    combined = FilterQuery(search_text="a", genre="non fiction", min_rating=4.6)
    separate = [
        FilterQuery(search_text="a"),
        FilterQuery(genre="non fiction"),
        FilterQuery(min_rating=4.6),
    ]

    expected = set(r.id for r in shelf)
    for q in separate:
        expected &= {r.id for r in apply_filters(shelf, q)}

    assert {r.id for r in apply_filters(shelf, combined)} == expected == {"e"}


def test_sort_by_rating_is_stable():
    """Test descending rating sort keeps ties in input order."""
    records = [
        CatalogRecord("1", "A", rating=3),
        CatalogRecord("2", "B", rating=5),
        CatalogRecord("3", "C", rating=3),
    ]

    result = apply_filters(records, FilterQuery(sort_key=SortKey.RATING))

    assert titles(result) == ["B", "A", "C"]


def test_sort_by_title_puts_empty_first(shelf):
    """Test ascending title order, ignoring case, with empty titles first."""
    result = apply_filters(shelf, FilterQuery(sort_key=SortKey.TITLE))
    assert titles(result) == ["", "educated", "Foundation", "Neuromancer", "Sapiens"]


def test_sort_by_author_and_year(shelf):
    """Test author ascending and year descending."""
    by_author = apply_filters(shelf, FilterQuery(sort_key=SortKey.AUTHOR))
    assert [r.author for r in by_author][:2] == ["", "Isaac Asimov"]

    by_year = apply_filters(shelf, FilterQuery(sort_key=SortKey.YEAR))
    assert [r.published_year for r in by_year] == [2018, 2011, 1984, 1951, 0]


def test_apply_filters_does_not_mutate_input(shelf):
    """Test that the engine never changes its input."""
    before = list(shelf)
    apply_filters(shelf, FilterQuery(sort_key=SortKey.RATING, min_rating=1))
    assert shelf == before


def test_apply_filters_accepts_raw_records():
    """Test that raw payloads are normalized on the way in."""
    raw = [{"id": "x", "title": "Raw", "averageRating": "4.9"}, None]
    result = apply_filters(raw, FilterQuery(min_rating=4))
    assert titles(result) == ["Raw"]


def test_malformed_form_values_match_nothing(classics):
    """Test that unparseable numbers degrade to no match instead of failing."""
    query = FilterQuery.from_form(rating="abc")
    assert math.isnan(query.min_rating)
    assert apply_filters(classics, query) == []


def test_from_form():
    """Test building a query from form strings."""
    query = FilterQuery.from_form(query="dune", genre="Sci-Fi", rating="4", year="1965", sort="rating")

    assert query.min_rating == 4.0
    assert query.year == 1965.0
    assert query.sort_key is SortKey.RATING

    empty = FilterQuery.from_form(rating="", year="", sort="popularity")
    assert empty.min_rating is None
    assert empty.year is None
    assert empty.sort_key is SortKey.TITLE


def test_raw_values_in_query_constructor(classics):
    """Test that empty and string bounds behave like their parsed values."""
    assert titles(apply_filters(classics, FilterQuery(min_rating=""))) == ["Dune", "Emma"]
    assert titles(apply_filters(classics, FilterQuery(year=""))) == ["Dune", "Emma"]
    assert titles(apply_filters(classics, FilterQuery(year="1965"))) == ["Dune"]
    assert titles(apply_filters(classics, FilterQuery(min_rating=" 4.5 "))) == ["Dune"]
    assert apply_filters(classics, FilterQuery(year="soon")) == []

    query = FilterQuery(search_text=None, genre=None, sort_key="year")
    assert query.sort_key is SortKey.YEAR
    assert titles(apply_filters(classics, query)) == ["Dune", "Emma"]


def test_genre_options(shelf):
    """Test distinct trimmed genres with original casing."""
    assert genre_options(shelf) == ["Non-Fiction", "nonfiction", "science fiction", "SciFi"]


def test_year_options(shelf):
    """Test distinct positive years, newest first."""
    records = shelf + [CatalogRecord("f", published_year=2018)]
    assert year_options(records) == [2018, 2011, 1984, 1951]


def test_catalog_view_recomputes_options(classics):
    """Test that option lists follow collection changes."""
    view = CatalogView(classics)
    assert view.genre_options == ["Romance", "Sci-Fi"]
    assert view.year_options == [1965, 1815]

    view.upsert({"bookId": "3", "title": "Beloved", "genre": "Literary", "publishedYear": "1987"})
    assert view.genre_options == ["Literary", "Romance", "Sci-Fi"]
    assert view.year_options == [1987, 1965, 1815]

    assert view.remove("1") is True
    assert view.remove("missing") is False
    assert view.genre_options == ["Literary", "Romance"]
    assert len(view) == 2


def test_catalog_view_upsert_replaces_in_place(classics):
    """Test that an updated book keeps its position."""
    view = CatalogView(classics)
    view.upsert({"bookId": "1", "title": "Dune Messiah", "rating": "4.2"})

    assert [r.id for r in view.records] == ["1", "2"]
    assert view.get("1").title == "Dune Messiah"
    assert view.get("1").rating == 4.2


def test_catalog_view_filtered(classics):
    """Test memoized filtering returns fresh lists."""
    view = CatalogView(classics)
    query = FilterQuery(sort_key=SortKey.YEAR)

    first = view.filtered(query)
    first.clear()

    assert titles(view.filtered(query)) == ["Dune", "Emma"]
