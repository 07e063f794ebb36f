from typing import List, Optional

from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from sqlalchemy.orm import Session

from schoolhub.config.db import get_db
from schoolhub.core.exceptions import (
    InvalidUpload,
    NotFoundError,
    PermissionDenied,
    ValidationFailed,
)
from schoolhub.core.logging_config import get_logger
from schoolhub.models.models import Book, Student, User, WishlistItem
from schoolhub.routes.router import get_current_user
from schoolhub.schemas.schemas import (
    StudentCreate,
    StudentOut,
    StudentUpdate,
    WishlistAdd,
    WishlistItemOut,
)
from schoolhub.services.storage import get_storage, remove_stored_file, store_upload

router = APIRouter()
logger = get_logger(__name__)

REQUIRED_FIELDS = {
    "first_name", "last_name", "date_of_birth", "street_address", "city",
    "postal_code", "country", "nationality", "passport_number",
    "passport_expiry_date",
}


def get_student_for(db: Session, student_id: int, user: User) -> Student:
    """Load a student the user is allowed to see: their own, or any for admins."""
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise NotFoundError("student not found")
    if not user.is_admin and student.user_id != user.id:
        raise PermissionDenied("permission denied")
    return student


@router.get("", response_model=List[StudentOut])
def list_students(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """
    Admins get every student, guardians only their own.
    """
    query = db.query(Student).order_by(Student.id)
    if not current_user.is_admin:
        query = query.filter(Student.user_id == current_user.id)
    return query.all()


@router.get("/{student_id}", response_model=StudentOut)
def get_student(
    student_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_student_for(db, student_id, current_user)


@router.post("", response_model=StudentOut, status_code=status.HTTP_201_CREATED)
def create_student(
    student: StudentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Creates a student profile.

    The student belongs to the requester, unless an admin names another
    guardian with ``userId``.
    """
    guardian = current_user
    if current_user.is_admin and student.user_id and student.user_id != current_user.id:
        guardian = db.query(User).filter(User.id == student.user_id).first()
        if not guardian:
            raise NotFoundError("target user not found")

    data = student.model_dump(exclude={"user_id"})
    new_student = Student(**data, user_id=guardian.id)
    db.add(new_student)
    db.commit()
    db.refresh(new_student)

    logger.info(f"Student {new_student.id} created for user {guardian.id}")
    return new_student


@router.put("/{student_id}", response_model=StudentOut)
def update_student(
    student_id: int,
    updates: StudentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Updates the fields sent in the body. Guardian or admin only.
    """
    student = get_student_for(db, student_id, current_user)

    data = updates.model_dump(exclude_unset=True)
    cleared = [field for field in REQUIRED_FIELDS if field in data and data[field] is None]
    if cleared:
        raise ValidationFailed(f"{', '.join(sorted(cleared))} cannot be empty")

    for field, value in data.items():
        setattr(student, field, value)
    db.commit()
    db.refresh(student)
    return student


@router.delete("/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_student(
    student_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    """
    Deletes a student with its wishlist and dashboard, and the files they
    point at.
    """
    student = get_student_for(db, student_id, current_user)

    remove_stored_file(storage, student.profile_picture)
    if student.dashboard is not None:
        for portfolio in student.dashboard.portfolios:
            remove_stored_file(storage, portfolio.pdf_url)
        for document in student.dashboard.documents:
            remove_stored_file(storage, document.url)
        for event in student.dashboard.history:
            remove_stored_file(storage, event.download_url)

    db.delete(student)
    db.commit()

    logger.info(f"Student {student_id} deleted by user {current_user.id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ==========================================
# Wishlist
# ==========================================

@router.get("/{student_id}/wishlist", response_model=List[WishlistItemOut])
def get_wishlist(
    student_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Lists the books on a student's wishlist, oldest first.

    Parameters:
        student_id: Student whose wishlist to read.

    Returns:
        List[WishlistItemOut]: Each book with the date it was added.

    Raises:
        NotFoundError: If the student does not exist.
        PermissionDenied: If the caller is neither the guardian nor an admin.
    """
    return get_student_for(db, student_id, current_user).wishlist


@router.post(
    "/{student_id}/wishlist",
    response_model=List[WishlistItemOut],
    status_code=status.HTTP_201_CREATED,
)
def add_to_wishlist(
    student_id: int,
    body: WishlistAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Adds a book to a student's wishlist. A book can be listed only once.

    Parameters:
        student_id: Student whose wishlist to extend.
        body: ``{"bookId": ...}``.

    Returns:
        List[WishlistItemOut]: The updated wishlist.

    Raises:
        NotFoundError: If the student or the book does not exist.
        PermissionDenied: If the caller is neither the guardian nor an admin.
        ValidationFailed: If the book is already on the wishlist.
    """
    student = get_student_for(db, student_id, current_user)

    book = db.query(Book).filter(Book.id == body.book_id).first()
    if not book:
        raise NotFoundError("book not found")
    if any(item.book_id == book.id for item in student.wishlist):
        raise ValidationFailed("book is already in the wishlist")

    student.wishlist.append(WishlistItem(book=book))
    db.commit()
    db.refresh(student)
    return student.wishlist


@router.delete("/{student_id}/wishlist/{book_id}", response_model=List[WishlistItemOut])
def remove_from_wishlist(
    student_id: int,
    book_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Removes a book from a student's wishlist.

    Raises:
        NotFoundError: If the student is unknown or the book is not listed.
        PermissionDenied: If the caller is neither the guardian nor an admin.
    """
    student = get_student_for(db, student_id, current_user)

    item = next((item for item in student.wishlist if item.book_id == book_id), None)
    if item is None:
        raise NotFoundError("book not in wishlist")

    student.wishlist.remove(item)
    db.commit()
    db.refresh(student)
    return student.wishlist


# ==========================================
# Profile picture
# ==========================================

@router.post("/{student_id}/profile-picture", response_model=StudentOut)
def upload_profile_picture(
    student_id: int,
    profile_picture: Optional[UploadFile] = File(None, alias="profilePicture"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    """
    Stores a new profile picture, replacing and deleting the previous one.
    """
    student = get_student_for(db, student_id, current_user)
    if profile_picture is None:
        raise InvalidUpload("No file uploaded")

    url = store_upload(
        storage,
        "profile_picture",
        f"student-{student.id}",
        profile_picture.filename,
        profile_picture.content_type,
        profile_picture.file.read(),
    )
    remove_stored_file(storage, student.profile_picture)
    student.profile_picture = url
    db.commit()
    db.refresh(student)
    return student


@router.delete("/{student_id}/profile-picture", response_model=StudentOut)
def remove_profile_picture(
    student_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    student = get_student_for(db, student_id, current_user)
    if not student.profile_picture:
        raise ValidationFailed("student has no profile picture")

    remove_stored_file(storage, student.profile_picture)
    student.profile_picture = None
    db.commit()
    db.refresh(student)
    return student
