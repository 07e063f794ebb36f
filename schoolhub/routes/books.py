import math
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from schoolhub.config.db import get_db
from schoolhub.core.exceptions import PermissionDenied
from schoolhub.core.logging_config import get_logger
from schoolhub.models.models import Book, User, WishlistItem
from schoolhub.routes.router import get_current_user, require_staff
from schoolhub.schemas.schemas import (
    BookCreate,
    BookOut,
    BookPage,
    BookStats,
    BookSummary,
    BookUpdate,
    LendRequest,
)
from schoolhub.services import lending, list_helper

router = APIRouter()
logger = get_logger(__name__)


@router.get("", response_model=Union[BookPage, List[BookOut]])
def list_books(
    page: Optional[int] = Query(None, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """
    Lists the catalog.

    Without ``page`` every book is returned as a plain list; with ``page``
    the response is a page envelope of at most ``limit`` books.
    """
    query = db.query(Book).order_by(Book.id)
    if page is None:
        return [BookOut.model_validate(book) for book in query.all()]

    total = query.count()
    books = query.offset((page - 1) * limit).limit(limit).all()
    return BookPage(
        items=[BookOut.model_validate(book) for book in books],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/stats", response_model=BookStats)
def book_stats(db: Session = Depends(get_db)):
    """
    Likes and author statistics over the whole catalog.
    """
    books = db.query(Book).order_by(Book.id).all()
    favorite = list_helper.favorite_book(books)
    return BookStats(
        total_likes=list_helper.total_likes(books),
        favorite_book=BookSummary.model_validate(favorite) if favorite else None,
        most_books=list_helper.most_books(books),
        most_likes=list_helper.most_likes(books),
    )


@router.get("/{book_id}", response_model=BookOut)
def get_book(book_id: int, db: Session = Depends(get_db)):
    return lending.get_book_or_404(db, book_id)


@router.post("", response_model=BookOut, status_code=status.HTTP_201_CREATED)
def create_book(
    book: BookCreate,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """
    Adds a book to the catalog, owned by the creating admin or tutor.
    """
    new_book = Book(
        title=book.title,
        author=book.author or "Unknown Author",
        url=book.url,
        language=book.language,
        difficulty=book.difficulty,
        likes=book.likes,
        user_id=current_user.id,
    )
    db.add(new_book)
    db.commit()
    db.refresh(new_book)

    logger.info(f"Book {new_book.id} created by user {current_user.id}")
    return new_book


@router.put("/{book_id}", response_model=BookOut)
def update_book(
    book_id: int,
    updates: BookUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Updates a book.

    Any signed-in user may change ``likes``; every other field is reserved
    for admins and tutors.
    """
    book = lending.get_book_or_404(db, book_id)

    data = updates.model_dump(exclude_unset=True)
    if set(data) - {"likes"} and not current_user.is_staff:
        raise PermissionDenied("only admins and tutors can edit books")

    for field, value in data.items():
        if field in ("title", "url", "likes") and value is None:
            continue
        setattr(book, field, value)
    db.commit()
    db.refresh(book)
    return book


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(
    book_id: int,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """
    Deletes a book. Only the admin or tutor who added it may do this.
    """
    book = lending.get_book_or_404(db, book_id)
    if book.user_id != current_user.id:
        raise PermissionDenied("unauthorized: can only delete your own books")

    db.query(WishlistItem).filter(WishlistItem.book_id == book.id).delete(
        synchronize_session=False
    )
    db.delete(book)
    db.commit()

    logger.info(f"Book {book_id} deleted by user {current_user.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{book_id}/lend", response_model=BookOut)
def lend_book(
    book_id: int,
    body: Optional[LendRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Borrows a book for the requester, or lends it to ``borrowerId`` when the
    requester is an admin or tutor.

    Parameters:
        book_id: Book to lend.
        body: Optional ``{"borrowerId": ...}`` naming another borrower.

    Returns:
        BookOut: The book with its new loan and history entry.

    Raises:
        NotFoundError: If the book or the named borrower does not exist.
        PermissionDenied: If a plain user names another borrower.
        BorrowLimitReached: If a plain-user borrower already holds the maximum.
        BookAlreadyLent: If the book is out on loan.
    """
    borrower_id = body.borrower_id if body else None
    return lending.lend_book(db, book_id, current_user, borrower_id=borrower_id)


@router.put("/{book_id}/return", response_model=BookOut)
def return_book(
    book_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Returns a lent book and closes its open history entry.

    Parameters:
        book_id: Book being returned.

    Returns:
        BookOut: The book, available again.

    Raises:
        NotFoundError: If the book does not exist.
        BookNotLent: If the book is not out on loan.
        PermissionDenied: If the requester is neither the borrower nor an admin.
    """
    return lending.return_book(db, book_id, current_user)


@router.put("/{book_id}/clear-history", response_model=BookOut)
def clear_history(
    book_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Empties a book's lending history. Admin only; the current loan is kept.
    """
    return lending.clear_history(db, book_id, current_user)
