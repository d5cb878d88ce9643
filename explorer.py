#!/usr/bin/env python3
"""Library Catalog Explorer CLI - browse the catalog, write reviews, keep reading lists and manage books."""
import argparse
import asyncio
import sys
import json
from typing import Any, Dict
from tabulate import tabulate
from libcatalog.catalog import CatalogView
from libcatalog.client import CatalogApiClient, CatalogApiError
from libcatalog.config import Config
from libcatalog.gating import GateDecision, RouteGuard
from libcatalog.identity import AuthError, CognitoIdentityProvider
from libcatalog.models import (
    CatalogRecord,
    FilterQuery,
    ReadingList,
    average_review_rating,
    clamp_review_rating,
)
from libcatalog.parse import (
    normalize,
    parse_books_response,
    parse_reading_list,
    parse_reading_lists_response,
    parse_reviews_response,
)
from libcatalog.session import SessionResolver
from libcatalog.validation import validate_email, validate_password, validate_required
import logging

logger = logging.getLogger(__name__)


def handle_api_error(error):
    """Report a failed user action."""
    logger.error(f"API Error: {error}")
    if isinstance(error, (CatalogApiError, AuthError, ValueError)):
        message = str(error)
    else:
        message = "An unexpected error occurred"
    print(f"Error: {message}", file=sys.stderr)


def build_provider(config: Config) -> CognitoIdentityProvider:
    return CognitoIdentityProvider(
        client_id=config.COGNITO_CLIENT_ID,
        endpoint=config.IDENTITY_ENDPOINT,
        timeout=config.DEFAULT_TIMEOUT
    )


def build_client(config: Config, provider=None) -> CatalogApiClient:
    return CatalogApiClient(
        config.API_BASE_URL,
        timeout=config.DEFAULT_TIMEOUT,
        token_provider=(lambda: provider.id_token) if provider else None
    )


async def open_session(args, config: Config, provider) -> SessionResolver:
    """Resolve the session, signing in when credentials are available."""
    resolver = SessionResolver(provider)
    email = args.email or config.CATALOG_EMAIL
    password = args.password or config.CATALOG_PASSWORD

    if email and password:
        await resolver.sign_in(email, password)
    else:
        await resolver.start()
    return resolver


def display_books(books, format_type: str):
    """Display books in specified format."""
    if format_type == "table":
        headers = ["ID", "Title", "Author", "Genre", "Rating", "Year"]
        rows = [
            [
                book.id,
                book.title[:50] + "..." if len(book.title) > 50 else book.title,
                book.author[:30] + "..." if len(book.author) > 30 else book.author,
                book.genre or "-",
                f"{book.rating:.1f}",
                book.published_year or "Unknown"
            ]
            for book in books
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        print(json.dumps([book.to_dict() for book in books], indent=2))

    elif format_type == "compact":
        for i, book in enumerate(books, 1):
            print(f"{i}. {book.title} - {book.author or 'Unknown'}")


def list_books(args, config: Config):
    """Filter and sort the catalog."""
    with build_client(config) as client:
        view = CatalogView(parse_books_response(client.list_books()))

    query = FilterQuery.from_form(
        query=args.search,
        genre=args.genre,
        rating=args.min_rating,
        year=args.year,
        sort=args.sort
    )
    books = view.filtered(query)
    if args.limit:
        books = books[:args.limit]

    logger.info(f"Showing {len(books)} of {len(view)} books")
    display_books(books, args.format)


def show_filters(args, config: Config):
    """Show the genre and year options present in the catalog."""
    with build_client(config) as client:
        view = CatalogView(parse_books_response(client.list_books()))

    print("\nGenres: " + (", ".join(view.genre_options) or "none"))
    print("Years:  " + (", ".join(str(y) for y in view.year_options) or "none") + "\n")


def show_book(args, config: Config):
    """Show one book with its reviews."""
    with build_client(config) as client:
        raw = client.get_book(args.book_id)
        if raw is None:
            print(f"Book {args.book_id} not found")
            return
        reviews = parse_reviews_response(client.list_reviews(args.book_id))

    book = normalize(raw)
    average = average_review_rating(reviews)

    print("\n" + "=" * 50)
    print(f"{book.title} by {book.author or 'Unknown'}")
    print("=" * 50)
    print(f"Genre:     {book.genre or '-'}")
    print(f"Published: {book.published_year or 'Unknown'}")
    print(f"ISBN:      {book.isbn or '-'}")
    print(f"Rating:    {book.rating:.1f}")
    if average is not None:
        print(f"Readers:   {average} / 5 ({len(reviews)} reviews)")
    if book.description:
        print(f"\n{book.description}")
    print()

    if args.reviews and reviews:
        rows = [
            [
                r.display_name + (" [Admin]" if r.show_admin_badge else ""),
                r.rating,
                r.comment[:60],
                r.created_at
            ]
            for r in reviews
        ]
        print(tabulate(rows, headers=["Reviewer", "Rating", "Comment", "Date"], tablefmt="grid"))


def recommend(args, config: Config):
    """Ask for AI recommendations."""
    if not validate_required(args.query):
        print("Please enter a query")
        return
    with build_client(config) as client:
        print("\n" + client.get_recommendations(args.query) + "\n")


async def authorize(args, config: Config, provider, admin_only: bool = False,
                    sign_in_message: str = "Please sign in first"):
    """
    Resolve the session and run it through a route guard.

    Returns:
        The session snapshot when the region may render, otherwise None
    """
    resolver = await open_session(args, config, provider)
    guard = RouteGuard(admin_only=admin_only, warn=lambda message: print(f"⚠️  {message}"))
    decision = guard.evaluate(resolver.snapshot)

    if decision is GateDecision.REDIRECT_SIGN_IN:
        print(sign_in_message)
        return None
    if decision is not GateDecision.RENDER:
        return None
    return resolver.snapshot


def confirmed(args, question: str) -> bool:
    """Ask before destructive actions unless --yes was given."""
    if getattr(args, "yes", False):
        return True
    return input(f"{question} [y/N] ").strip().lower() in ("y", "yes")


# Reading lists

def find_reading_list(client: CatalogApiClient, list_id: str) -> ReadingList:
    for reading_list in parse_reading_lists_response(client.list_reading_lists()):
        if reading_list.id == list_id:
            return reading_list
    raise ValueError(f"Reading list {list_id} not found")


def create_list(client: CatalogApiClient, snapshot, name: str, description: str = "") -> ReadingList:
    """Create an empty reading list owned by the signed-in user."""
    if not validate_required(name):
        raise ValueError("Please enter a list name")

    fields = {
        "userId": snapshot.user.user_id,
        "name": name.strip(),
        "description": description or "",
        "bookIds": [],
    }
    created = client.create_reading_list(fields)
    return parse_reading_list(created if isinstance(created, dict) else fields)


def add_book_to_list(client: CatalogApiClient, list_id: str, book_id: str) -> ReadingList:
    """Append a book to a list; raises ValueError if it is already there."""
    reading_list = find_reading_list(client, list_id).with_book(book_id)
    client.update_reading_list(reading_list.id, reading_list.to_dict())
    return reading_list


def remove_book_from_list(client: CatalogApiClient, list_id: str, book_id: str) -> ReadingList:
    reading_list = find_reading_list(client, list_id).without_book(book_id)
    client.update_reading_list(reading_list.id, reading_list.to_dict())
    return reading_list


def display_reading_lists(lists):
    rows = [[rl.id, rl.name, rl.description[:40], len(rl.book_ids)] for rl in lists]
    print("\n" + tabulate(rows, headers=["ID", "Name", "Description", "Books"], tablefmt="grid"))


async def reading_lists(args, config: Config):
    """Show and edit the signed-in user's reading lists."""
    async with build_provider(config) as provider:
        snapshot = await authorize(
            args, config, provider, sign_in_message="Please sign in to manage your reading lists"
        )
        if snapshot is None:
            return

        with build_client(config, provider) as client:
            action = args.list_action or "show"

            if action == "show":
                display_reading_lists(parse_reading_lists_response(client.list_reading_lists()))

            elif action == "create":
                created = create_list(client, snapshot, args.name, args.description)
                print(f"✅ Reading list created successfully! ({created.id or created.name})")

            elif action == "delete":
                if not confirmed(args, "Are you sure you want to delete this list?"):
                    return
                client.delete_reading_list(args.list_id)
                print("✅ List deleted")

            elif action == "add-book":
                add_book_to_list(client, args.list_id, args.book_id)
                print("✅ Book added to list")

            elif action == "remove-book":
                remove_book_from_list(client, args.list_id, args.book_id)
                print("✅ Book removed from list")


# Reviews

def submit_review(client: CatalogApiClient, snapshot, book_id: str, rating, comment: str = ""):
    """Post a review as the signed-in user."""
    user = snapshot.user
    fields = {
        "bookId": book_id,
        "userId": user.user_id,
        "userName": user.display_name or "User",
        "isAdmin": snapshot.is_admin,
        "rating": clamp_review_rating(rating),
        "comment": comment or "",
    }
    return client.create_review(fields)


def delete_own_review(client: CatalogApiClient, snapshot, book_id: str, created_at: str):
    """Delete a review written by the signed-in user."""
    reviews = parse_reviews_response(client.list_reviews(book_id))
    review = next((r for r in reviews if r.created_at == created_at), None)
    if review is None:
        raise ValueError("Review not found")
    if review.user_id != snapshot.user.user_id:
        raise ValueError("You can only delete your own reviews")
    client.delete_review(book_id, created_at)


async def review(args, config: Config):
    """Write or delete a review."""
    async with build_provider(config) as provider:
        snapshot = await authorize(
            args, config, provider, sign_in_message="You must be logged in to write a review."
        )
        if snapshot is None:
            return

        with build_client(config, provider) as client:
            if args.delete:
                delete_own_review(client, snapshot, args.book_id, args.delete)
                print("✅ Review deleted.")
            else:
                submit_review(client, snapshot, args.book_id, args.rating, args.comment)
                print("✅ Review submitted!")


# Admin

BOOK_FIELDS = {
    "title": "title",
    "author": "author",
    "genre": "genre",
    "description": "description",
    "cover_image": "coverImage",
    "rating": "rating",
    "year": "publishedYear",
    "isbn": "isbn",
}


def book_fields(args) -> Dict[str, Any]:
    """Backend fields for the book options that were given on the command line."""
    return {
        key: getattr(args, attr)
        for attr, key in BOOK_FIELDS.items()
        if getattr(args, attr, None) is not None
    }


def create_catalog_book(client: CatalogApiClient, view: CatalogView, fields: Dict[str, Any]) -> CatalogRecord:
    if not validate_required(fields.get("title")) or not validate_required(fields.get("author")):
        raise ValueError("Please fill in required fields")
    created = client.create_book(fields)
    return view.upsert(created)


def update_catalog_book(
    client: CatalogApiClient,
    view: CatalogView,
    book_id: str,
    fields: Dict[str, Any]
) -> CatalogRecord:
    """Apply changed fields on top of the current book."""
    current = view.get(book_id)
    if current is None:
        raise ValueError(f"Book {book_id} not found")

    merged = {**current.to_dict(), **fields}
    merged.pop("bookId")
    updated = client.update_book(book_id, merged)

    result = {**merged, **updated} if isinstance(updated, dict) else merged
    return view.upsert({**result, "bookId": book_id})


def delete_catalog_book(client: CatalogApiClient, view: CatalogView, book_id: str):
    client.delete_book(book_id)
    view.remove(book_id)


def show_admin_stats(client: CatalogApiClient, view: CatalogView):
    users = client.get_admin_user_count()
    lists = client.get_admin_reading_list_count()

    print("\n" + "=" * 50)
    print("CATALOG STATISTICS")
    print("=" * 50)
    print(f"Total books:         {len(view)}")
    print(f"Registered users:    {users}")
    print(f"Reading lists:       {lists}")
    print("=" * 50 + "\n")


async def admin(args, config: Config):
    """Admin metrics and book management; admin-only."""
    async with build_provider(config) as provider:
        snapshot = await authorize(
            args, config, provider, admin_only=True,
            sign_in_message="Please sign in with an admin account"
        )
        if snapshot is None:
            return

        with build_client(config, provider) as client:
            view = CatalogView(parse_books_response(client.list_books()))
            action = args.admin_action or "stats"

            if action == "stats":
                show_admin_stats(client, view)

            elif action == "add-book":
                book = create_catalog_book(client, view, book_fields(args))
                print(f"✅ Book added successfully! ({book.id})")

            elif action == "update-book":
                book = update_catalog_book(client, view, args.book_id, book_fields(args))
                print(f"✅ Book updated successfully! ({book.title})")

            elif action == "delete-book":
                if not confirmed(args, "Are you sure you want to delete this book?"):
                    return
                delete_catalog_book(client, view, args.book_id)
                print(f"✅ Book deleted successfully! {len(view)} books left")


async def whoami(args, config: Config):
    """Show the resolved session."""
    async with build_provider(config) as provider:
        resolver = await open_session(args, config, provider)
        snapshot = resolver.snapshot

    if not snapshot.is_authenticated:
        print("Not signed in")
        return
    user = snapshot.user
    print(f"\n{user.display_name} <{user.email}>")
    print(f"User ID: {user.user_id}")
    print(f"Role:    {user.role}\n")


async def signup(args, config: Config):
    """Register a new account."""
    if not validate_email(args.email):
        print("Please enter a valid email address")
        return
    if not validate_password(args.password):
        print("Password must be at least 8 characters with upper, lower case letters and a number")
        return
    if not validate_required(args.name):
        print("Please enter your name")
        return

    async with build_provider(config) as provider:
        await SessionResolver(provider).sign_up(args.email, args.password, args.name)
    print("✅ Signup successful! Check your email for the verification code, then run 'confirm'.")


async def confirm(args, config: Config):
    """Confirm a new account with the emailed code."""
    if not validate_required(args.email):
        print("Please pass --email for the account to confirm")
        return
    async with build_provider(config) as provider:
        await SessionResolver(provider).confirm_sign_up(args.email, args.code)
    print("✅ Account confirmed, you can sign in now.")


def add_book_arguments(parser):
    parser.add_argument("--title", help="Title")
    parser.add_argument("--author", help="Author")
    parser.add_argument("--genre", help="Genre")
    parser.add_argument("--description", help="Description")
    parser.add_argument("--cover-image", help="Cover image URL")
    parser.add_argument("--rating", type=float, help="Rating")
    parser.add_argument("--year", type=int, help="Publication year")
    parser.add_argument("--isbn", help="ISBN")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Library Catalog Explorer - browse books, reviews and reading lists",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Browse the catalog
  %(prog)s books --genre "sci fi" --sort rating

  # Search by title, author or genre
  %(prog)s books --search dune --format compact

  # Review a book and keep it on a list
  %(prog)s review 42 --rating 5 --comment "Loved it"
  %(prog)s lists add-book LIST_ID 42

  # Admin metrics and book management
  %(prog)s --email admin@example.com --password '...' admin
  %(prog)s admin add-book --title "Dune" --author "Frank Herbert" --year 1965
        """
    )
    parser.add_argument("--email", help="Account email (default: CATALOG_EMAIL)")
    parser.add_argument("--password", help="Account password (default: CATALOG_PASSWORD)")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Books command
    books_parser = subparsers.add_parser("books", help="List, filter and sort books")
    books_parser.add_argument("--search", default="", help="Text to find in title, author or genre")
    books_parser.add_argument("--genre", default="", help="Genre (matching ignores case and spelling variants)")
    books_parser.add_argument("--min-rating", default="", help="Minimum rating")
    books_parser.add_argument("--year", default="", help="Publication year")
    books_parser.add_argument("--sort", choices=["title", "author", "rating", "year"], default="title", help="Sort order")
    books_parser.add_argument("--limit", type=int, help="Max results")
    books_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    subparsers.add_parser("filters", help="Show available genres and years")

    book_parser = subparsers.add_parser("book", help="Show one book")
    book_parser.add_argument("book_id", help="Book ID")
    book_parser.add_argument("--reviews", action="store_true", help="Also list reviews")

    review_parser = subparsers.add_parser("review", help="Write or delete a review")
    review_parser.add_argument("book_id", help="Book ID")
    review_parser.add_argument("--rating", default=5, help="Stars, 1-5")
    review_parser.add_argument("--comment", default="", help="Review text")
    review_parser.add_argument("--delete", metavar="CREATED_AT", help="Delete your review with this timestamp")

    recommend_parser = subparsers.add_parser("recommend", help="Get AI recommendations")
    recommend_parser.add_argument("query", help="What do you like to read?")

    # Reading lists
    lists_parser = subparsers.add_parser("lists", help="Show and edit your reading lists")
    list_actions = lists_parser.add_subparsers(dest="list_action")
    list_actions.add_parser("show", help="Show your reading lists")
    create_list_parser = list_actions.add_parser("create", help="Create a reading list")
    create_list_parser.add_argument("name", help="List name")
    create_list_parser.add_argument("--description", default="", help="List description")
    delete_list_parser = list_actions.add_parser("delete", help="Delete a reading list")
    delete_list_parser.add_argument("list_id", help="List ID")
    delete_list_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    for action, help_text in (("add-book", "Add a book to a list"), ("remove-book", "Remove a book from a list")):
        list_book_parser = list_actions.add_parser(action, help=help_text)
        list_book_parser.add_argument("list_id", help="List ID")
        list_book_parser.add_argument("book_id", help="Book ID")

    subparsers.add_parser("whoami", help="Show the signed-in user")

    # Admin
    admin_parser = subparsers.add_parser("admin", help="Admin statistics and book management")
    admin_actions = admin_parser.add_subparsers(dest="admin_action")
    admin_actions.add_parser("stats", help="Show admin statistics")
    add_book_arguments(admin_actions.add_parser("add-book", help="Add a book"))
    update_parser = admin_actions.add_parser("update-book", help="Update a book")
    update_parser.add_argument("book_id", help="Book ID")
    add_book_arguments(update_parser)
    delete_book_parser = admin_actions.add_parser("delete-book", help="Delete a book")
    delete_book_parser.add_argument("book_id", help="Book ID")
    delete_book_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    signup_parser = subparsers.add_parser("signup", help="Create an account")
    signup_parser.add_argument("name", help="Display name")

    confirm_parser = subparsers.add_parser("confirm", help="Confirm an account")
    confirm_parser.add_argument("code", help="Verification code from the email")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        if args.command == "books":
            list_books(args, config)
        elif args.command == "filters":
            show_filters(args, config)
        elif args.command == "book":
            show_book(args, config)
        elif args.command == "recommend":
            recommend(args, config)
        elif args.command == "review":
            asyncio.run(review(args, config))
        elif args.command == "lists":
            asyncio.run(reading_lists(args, config))
        elif args.command == "whoami":
            asyncio.run(whoami(args, config))
        elif args.command == "admin":
            asyncio.run(admin(args, config))
        elif args.command == "signup":
            asyncio.run(signup(args, config))
        elif args.command == "confirm":
            asyncio.run(confirm(args, config))

    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except (CatalogApiError, AuthError, ValueError) as e:
        handle_api_error(e)
        sys.exit(1)
    except Exception as e:
        logger.error(f"❌ Error: {e}", exc_info=True)
        handle_api_error(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
