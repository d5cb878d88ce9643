"""HTTP client for the library catalog backend."""
import json
import requests
from typing import Any, Callable, Dict, List, Optional
import logging

from libcatalog.parse import unwrap_body

logger = logging.getLogger(__name__)

RECOMMENDATION_FALLBACK = (
    "Recommendations are unavailable right now, please try again later."
)

TokenProvider = Callable[[], Optional[str]]


class CatalogApiError(Exception):
    """A backend call failed; the message is meant for the user."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CatalogApiClient:
    """Client for the catalog REST API (books, lists, reviews, admin metrics)."""

    def __init__(
        self,
        base_url: str,
        timeout: int = 10,
        token_provider: Optional[TokenProvider] = None
    ):
        """
        Initialize the catalog API client.

        Args:
            base_url: API root, e.g. https://example.execute-api.amazonaws.com/prod
            timeout: Request timeout in seconds
            token_provider: Callable returning the current id token, if any
        """
        if not base_url:
            raise ValueError("API_BASE_URL is not defined")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token_provider = token_provider

        # Create session for connection pooling
        self.session = requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token_provider is None:
            return headers
        try:
            token = self.token_provider()
        except Exception as e:
            logger.error(f"Auth headers error: {e}")
            return headers
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        failure: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        allow_missing: bool = False
    ) -> Any:
        """
        Make one request and return the unwrapped JSON payload.

        Args:
            method: HTTP verb
            path: Path below the API root
            failure: Message prefix used when the call fails
            params: Query parameters
            json_body: JSON request body
            allow_missing: Return None instead of raising on 404

        Returns:
            Decoded payload with any gateway envelope removed
        """
        url = f"{self.base_url}{path}"
        logger.info(f"{method} {url}")

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers(),
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            logger.warning(f"Timeout: {method} {url}")
            raise CatalogApiError(f"{failure} (timeout)")
        except requests.exceptions.RequestException as e:
            logger.warning(f"Request error: {method} {url}: {e}")
            raise CatalogApiError(f"{failure} ({e})")

        if allow_missing and response.status_code == 404:
            return None

        if not response.ok:
            logger.error(f"{failure}: {response.status_code} - {response.text}")
            raise CatalogApiError(
                f"{failure} ({response.status_code}). {response.text}".strip(),
                status_code=response.status_code
            )

        if not response.content:
            return None

        try:
            return unwrap_body(response.json())
        except ValueError as e:
            raise CatalogApiError(f"{failure} (invalid response: {e})", response.status_code)

    # Books

    def list_books(self) -> List[Dict[str, Any]]:
        """Get all books from the catalog."""
        return self._request("GET", "/books", "Failed to fetch books") or []

    def get_book(self, book_id: str) -> Optional[Dict[str, Any]]:
        """Get a single book; None when it does not exist."""
        return self._request(
            "GET", f"/books/{book_id}", "Failed to fetch book", allow_missing=True
        )

    def create_book(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new book (admin only)."""
        created = self._request("POST", "/books", "Failed to create book", json_body=fields)
        logger.info(f"Book created: {created}")
        return created

    def update_book(self, book_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Update an existing book (admin only)."""
        return self._request(
            "PUT", f"/books/{book_id}", "Failed to update book", json_body=fields
        )

    def delete_book(self, book_id: str) -> None:
        """Delete a book (admin only)."""
        self._request("DELETE", f"/books/{book_id}", "Failed to delete book")
        logger.info(f"Book {book_id} deleted")

    # Reading lists

    def list_reading_lists(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/reading-lists", "Failed to fetch reading lists") or []

    def create_reading_list(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request(
            "POST", "/reading-lists", "Failed to create reading list", json_body=fields
        )

    def update_reading_list(self, list_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request(
            "PUT", f"/reading-lists/{list_id}", "Failed to update reading list", json_body=fields
        )

    def delete_reading_list(self, list_id: str) -> None:
        self._request("DELETE", f"/reading-lists/{list_id}", "Failed to delete reading list")

    # Reviews

    def list_reviews(self, book_id: str) -> List[Dict[str, Any]]:
        reviews = self._request(
            "GET", "/reviews", "Failed to fetch reviews", params={"bookId": book_id}
        )
        return reviews if isinstance(reviews, list) else []

    def create_review(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/reviews", "Failed to create review", json_body=fields)

    def delete_review(self, book_id: str, created_at: str) -> None:
        self._request(
            "DELETE",
            "/reviews",
            "Failed to delete review",
            params={"bookId": book_id, "createdAt": created_at}
        )

    # Recommendations

    def get_recommendations(self, query_text: str = "General") -> str:
        """
        Ask the backend for AI generated recommendations.

        Args:
            query_text: Free text describing what the reader likes

        Returns:
            Recommendation text, or a fallback sentence if the call fails
        """
        try:
            data = self._request(
                "POST",
                "/recommendations",
                "Failed to get recommendations",
                json_body={"favoriteGenres": query_text}
            )
        except CatalogApiError as e:
            logger.error(f"Recommendation error: {e}")
            return RECOMMENDATION_FALLBACK

        recommendations = data.get("recommendations") if isinstance(data, dict) else None
        if isinstance(recommendations, str):
            return recommendations
        return json.dumps(recommendations or data)

    # Admin metrics

    def _count(self, path: str, keys: List[str], label: str) -> int:
        data = self._request("GET", path, f"Failed to fetch {label.lower()}")
        if isinstance(data, dict):
            for key in keys:
                value = data.get(key)
                if isinstance(value, int) and not isinstance(value, bool):
                    return value
        raise CatalogApiError(f"{label} response is invalid")

    def get_admin_user_count(self) -> int:
        return self._count("/admin/users/count", ["totalUsers", "userCount", "count"], "Users count")

    def get_admin_reading_list_count(self) -> int:
        return self._count(
            "/admin/reading-lists/count", ["totalLists", "count"], "Reading lists count"
        )

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
