"""Tests for reading lists, reviews and form validation."""
import pytest

from libcatalog.models import (
    ReadingList,
    Review,
    average_review_rating,
    clamp_review_rating,
)
from libcatalog.validation import validate_email, validate_password, validate_required


def test_reading_list_with_book():
    """Test adding a book to a reading list."""
    reading_list = ReadingList(id="1", name="Summer", book_ids=["a"])

    updated = reading_list.with_book("b")

    assert updated.book_ids == ["a", "b"]
    assert reading_list.book_ids == ["a"]
    assert updated.to_dict()["bookIds"] == ["a", "b"]


def test_reading_list_rejects_duplicates():
    """Test that a book cannot be added twice."""
    with pytest.raises(ValueError, match="already in the list"):
        ReadingList(id="1", book_ids=["a"]).with_book("a")


def test_average_review_rating():
    """Test the review average."""
    reviews = [
        Review(id="1#a", book_id="1", user_id="u1", rating=5),
        Review(id="1#b", book_id="1", user_id="u2", rating=4),
        Review(id="1#c", book_id="1", user_id="u3", rating=4),
    ]
    assert average_review_rating(reviews) == 4.3
    assert average_review_rating([]) is None


def test_average_review_rating_rounds_half_up():
    """Test that a mean of exactly x.x5 rounds up."""
    reviews = [
        Review(id=f"1#{i}", book_id="1", user_id=f"u{i}", rating=rating)
        for i, rating in enumerate([1, 2, 2, 4])
    ]
    assert average_review_rating(reviews) == 2.3


def test_clamp_review_rating():
    """Test star rating bounds."""
    assert clamp_review_rating(9) == 5
    assert clamp_review_rating("0") == 1
    assert clamp_review_rating("3") == 3
    assert clamp_review_rating("abc") == 1
    assert clamp_review_rating(None) == 1


def test_clamp_review_rating_whole_stars():
    """Test that fractional ratings round to a whole star."""
    assert clamp_review_rating("3.7") == 4
    assert clamp_review_rating(2.5) == 3
    assert clamp_review_rating(4.2) == 4
    assert isinstance(clamp_review_rating("3.7"), int)


def test_reading_list_without_book():
    """Test removing a book from a reading list."""
    reading_list = ReadingList(id="1", book_ids=["a", "b"])
    assert reading_list.without_book("a").book_ids == ["b"]
    assert reading_list.without_book("z").book_ids == ["a", "b"]


def test_validate_email():
    """Test email validation."""
    for email in ["test@example.com", "user.name@domain.co", "user+alias@sub.domain.com"]:
        assert validate_email(email) is True
    for email in ["", "plainaddress", "missing@domain", "missing.domain@", "missing@.com", "space in@email.com", None]:
        assert validate_email(email) is False


def test_validate_password():
    """Test password strength rules."""
    for password in ["Aa1", "Aa1234", "password1", "PASSWORD1", "Password", None]:
        assert validate_password(password) is False
    for password in ["Password1", "StrongPass9", "A1b2c3d4"]:
        assert validate_password(password) is True


def test_validate_required():
    """Test required field checks."""
    assert validate_required("") is False
    assert validate_required("   ") is False
    assert validate_required("\n\t") is False
    assert validate_required(" test ") is True
    assert validate_required("0") is True
