"""
Book lending state machine.

A book is either available (``is_lent`` false, loan fields null) or lent to
exactly one borrower. Every loan appends one ``LendingRecord``; returning the
book closes that same record and resets the loan fields.

The borrow limit is evaluated with a live count query on each attempt. The
check and the write are not atomic, so two concurrent borrows of the same
book can both pass the availability check.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from schoolhub.config.settings import settings
from schoolhub.core.exceptions import (
    BookAlreadyLent,
    BookNotLent,
    BorrowLimitReached,
    NotFoundError,
    PermissionDenied,
)
from schoolhub.core.logging_config import get_logger
from schoolhub.models.models import Book, LendingRecord, User, utcnow

logger = get_logger(__name__)


def get_book_or_404(db: Session, book_id: int) -> Book:
    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise NotFoundError("book not found")
    return book


def count_active_loans(db: Session, user_id: int) -> int:
    """Number of books currently lent to ``user_id``."""
    return (
        db.query(Book)
        .filter(Book.is_lent.is_(True), Book.borrower_id == user_id)
        .count()
    )


def resolve_borrower(db: Session, requester: User, borrower_id: Optional[int]) -> User:
    """Pick who the loan is for: the requester, or another user when staff lend."""
    if borrower_id is None or borrower_id == requester.id:
        return requester
    if not requester.is_staff:
        raise PermissionDenied("only admins and tutors can lend books to other users")
    borrower = db.query(User).filter(User.id == borrower_id).first()
    if not borrower:
        raise NotFoundError("borrower not found")
    return borrower


def lend_book(
    db: Session,
    book_id: int,
    requester: User,
    borrower_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Book:
    """Lend a book to the requester (or, for staff, to ``borrower_id``).

    Raises:
        NotFoundError: book or borrower does not exist.
        PermissionDenied: a non-staff user tried to lend to someone else.
        BorrowLimitReached: a plain-user borrower already holds MAX_ACTIVE_LOANS books.
        BookAlreadyLent: the book has an open loan.
    """
    book = get_book_or_404(db, book_id)
    borrower = resolve_borrower(db, requester, borrower_id)

    limit = settings.MAX_ACTIVE_LOANS
    # Only plain users are limited
    if not borrower.is_staff and count_active_loans(db, borrower.id) >= limit:
        raise BorrowLimitReached(limit)

    if book.is_lent:
        raise BookAlreadyLent()

    lent_date = now or utcnow()
    due_date = lent_date + timedelta(days=settings.LOAN_PERIOD_DAYS)

    book.is_lent = True
    book.borrower_id = borrower.id
    book.lent_date = lent_date
    book.due_date = due_date
    book.lending_history.append(
        LendingRecord(
            borrower_id=borrower.id,
            lent_date=lent_date,
            due_date=due_date,
            returned_date=None,
            is_returned=False,
        )
    )
    db.commit()
    db.refresh(book)
    logger.info(f"Book {book.id} lent to user {borrower.id} until {due_date:%Y-%m-%d}")
    return book


def open_record(book: Book) -> Optional[LendingRecord]:
    """Most recent unreturned history entry of the current borrower."""
    for record in reversed(book.lending_history):
        if record.borrower_id == book.borrower_id and not record.is_returned:
            return record
    return None


def return_book(
    db: Session, book_id: int, requester: User, now: Optional[datetime] = None
) -> Book:
    """Return a lent book. Only the borrower or an admin may do this."""
    book = get_book_or_404(db, book_id)
    if not book.is_lent:
        raise BookNotLent()

    if book.borrower_id != requester.id and not requester.is_admin:
        raise PermissionDenied(
            "unauthorized: only the borrower or an admin can return this book"
        )

    record = open_record(book)
    if record is not None:
        record.returned_date = now or utcnow()
        record.is_returned = True
    else:
        logger.warning(f"Book {book.id} is lent but has no open history entry")

    borrower_id = book.borrower_id
    book.is_lent = False
    book.borrower_id = None
    book.lent_date = None
    book.due_date = None
    db.commit()
    db.refresh(book)
    logger.info(f"Book {book.id} returned by user {borrower_id}")
    return book


def clear_history(db: Session, book_id: int, requester: User) -> Book:
    """Drop the lending history of a book; the current loan is untouched."""
    if not requester.is_admin:
        raise PermissionDenied("only admins can clear lending history")
    book = get_book_or_404(db, book_id)
    book.lending_history.clear()
    db.commit()
    db.refresh(book)
    logger.info(f"Lending history of book {book.id} cleared by user {requester.id}")
    return book
