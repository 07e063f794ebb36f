from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from schoolhub.config.db import get_db
from schoolhub.core.exceptions import (
    InvalidUpload,
    NotFoundError,
    PermissionDenied,
    ValidationFailed,
)
from schoolhub.core.logging_config import get_logger
from schoolhub.models.models import (
    Dashboard,
    DashboardDocument,
    HistoryEvent,
    Portfolio,
    Student,
    User,
    utcnow,
)
from schoolhub.routes.router import get_current_user
from schoolhub.schemas.schemas import DashboardOut, DashboardUpdate, FileUrlOut, HistoryEventIn
from schoolhub.services.storage import (
    access_url,
    get_storage,
    remove_stored_file,
    store_upload,
)

router = APIRouter()
logger = get_logger(__name__)


def ensure_admin(user: User, action: str) -> None:
    if not user.is_admin:
        raise PermissionDenied(f"Only admins can {action}")


def get_dashboard(db: Session, student_id: int) -> Dashboard:
    dashboard = db.query(Dashboard).filter(Dashboard.student_id == student_id).first()
    if not dashboard:
        raise NotFoundError("Dashboard not found")
    return dashboard


def get_or_create_dashboard(db: Session, student_id: int) -> Dashboard:
    """Dashboards are created lazily the first time a student's is needed."""
    dashboard = db.query(Dashboard).filter(Dashboard.student_id == student_id).first()
    if dashboard:
        return dashboard

    if not db.query(Student).filter(Student.id == student_id).first():
        raise NotFoundError("Student not found")
    dashboard = Dashboard(student_id=student_id)
    db.add(dashboard)
    db.flush()
    logger.info(f"Created dashboard for student {student_id}")
    return dashboard


def get_viewable_student(db: Session, student_id: int, user: User) -> Student:
    """The student's guardian and admins may see its dashboard and files."""
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise NotFoundError("Student not found")
    if not user.is_admin and student.user_id != user.id:
        raise PermissionDenied("Access denied")
    return student


def find_entry(entries, entry_id: int, label: str):
    for entry in entries:
        if entry.id == entry_id:
            return entry
    raise NotFoundError(f"{label} not found")


def sort_history(db: Session, dashboard: Dashboard) -> None:
    """Keep the timeline ordered by event date."""
    db.flush()
    dashboard.history.sort(key=lambda event: (event.date, event.id))


def read_upload(upload: Optional[UploadFile], message: str = "No file uploaded"):
    if upload is None:
        raise InvalidUpload(message)
    return upload.filename, upload.content_type, upload.file.read()


def touch(db: Session, dashboard: Dashboard) -> Dashboard:
    dashboard.updated_at = utcnow()
    db.commit()
    db.refresh(dashboard)
    return dashboard


@router.get("/{student_id}", response_model=DashboardOut)
def get_student_dashboard(
    student_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Returns a student's dashboard, creating an empty one on first access.

    Only the student's guardian or an admin may view it.
    """
    get_viewable_student(db, student_id, current_user)
    dashboard = get_or_create_dashboard(db, student_id)
    db.commit()
    db.refresh(dashboard)
    return dashboard


@router.put("/{student_id}", response_model=DashboardOut)
def update_dashboard(
    student_id: int,
    updates: DashboardUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Edits existing history events (date, payment status, description ...).
    Admin only.
    """
    ensure_admin(current_user, "edit dashboards")
    dashboard = get_dashboard(db, student_id)

    # Resolve every target first so an unknown id leaves nothing half-written
    patches = [
        (find_entry(dashboard.history, patch.id, "History event"), patch)
        for patch in updates.history
    ]
    for event, patch in patches:
        for field, value in patch.model_dump(exclude_unset=True, exclude={"id"}).items():
            if field in ("date", "payment_status") and value is None:
                continue
            setattr(event, field, value)

    sort_history(db, dashboard)
    return touch(db, dashboard)


# ==========================================
# Portfolios
# ==========================================

@router.post("/{student_id}/portfolios", response_model=DashboardOut)
def upload_portfolio(
    student_id: int,
    portfolio: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    ensure_admin(current_user, "upload portfolio")
    filename, content_type, data = read_upload(portfolio)
    dashboard = get_or_create_dashboard(db, student_id)

    url = store_upload(storage, "portfolio", f"student-{student_id}", filename, content_type, data)
    dashboard.portfolios.append(
        Portfolio(pdf_url=url, file_name=filename, upload_date=utcnow())
    )
    return touch(db, dashboard)


@router.put("/{student_id}/portfolios/{portfolio_id}", response_model=DashboardOut)
def replace_portfolio(
    student_id: int,
    portfolio_id: int,
    portfolio: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    """
    Replaces the file of a portfolio entry and deletes the old file.
    """
    ensure_admin(current_user, "replace portfolio")
    filename, content_type, data = read_upload(portfolio)
    dashboard = get_dashboard(db, student_id)
    entry = find_entry(dashboard.portfolios, portfolio_id, "Portfolio")

    url = store_upload(storage, "portfolio", f"student-{student_id}", filename, content_type, data)
    remove_stored_file(storage, entry.pdf_url)
    entry.pdf_url = url
    entry.file_name = filename
    entry.upload_date = utcnow()
    return touch(db, dashboard)


@router.delete("/{student_id}/portfolios/{portfolio_id}", response_model=DashboardOut)
def delete_portfolio(
    student_id: int,
    portfolio_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    ensure_admin(current_user, "delete portfolio")
    dashboard = get_dashboard(db, student_id)
    entry = find_entry(dashboard.portfolios, portfolio_id, "Portfolio")

    remove_stored_file(storage, entry.pdf_url)
    dashboard.portfolios.remove(entry)
    return touch(db, dashboard)


@router.get("/{student_id}/portfolios/{portfolio_id}/url", response_model=FileUrlOut)
def get_portfolio_url(
    student_id: int,
    portfolio_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    """
    Returns a download URL for a portfolio PDF.

    Parameters:
        student_id: Student owning the dashboard.
        portfolio_id: Portfolio entry to open.

    Returns:
        ``{"url": ...}``: a presigned URL on S3, the static path locally.

    Raises:
        PermissionDenied: If the caller is neither the guardian nor an admin.
        NotFoundError: If the student, dashboard, entry or file is missing.
    """
    get_viewable_student(db, student_id, current_user)
    entry = find_entry(get_dashboard(db, student_id).portfolios, portfolio_id, "Portfolio")
    return FileUrlOut(url=access_url(storage, entry.pdf_url))


# ==========================================
# Documents
# ==========================================

@router.post("/{student_id}/documents", response_model=DashboardOut)
def add_document(
    student_id: int,
    document: Optional[UploadFile] = File(None),
    name: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    ensure_admin(current_user, "add documents")
    filename, content_type, data = read_upload(document)
    if not name or not name.strip():
        raise ValidationFailed("Document name is required")
    dashboard = get_or_create_dashboard(db, student_id)

    url = store_upload(storage, "document", f"student-{student_id}", filename, content_type, data)
    dashboard.documents.append(
        DashboardDocument(name=name.strip(), url=url, file_name=filename, upload_date=utcnow())
    )
    return touch(db, dashboard)


@router.delete("/{student_id}/documents/{document_id}", response_model=DashboardOut)
def remove_document(
    student_id: int,
    document_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    ensure_admin(current_user, "remove documents")
    dashboard = get_dashboard(db, student_id)
    entry = find_entry(dashboard.documents, document_id, "Document")

    remove_stored_file(storage, entry.url)
    dashboard.documents.remove(entry)
    return touch(db, dashboard)


@router.get("/{student_id}/documents/{document_id}/url", response_model=FileUrlOut)
def get_document_url(
    student_id: int,
    document_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    """
    Returns a download URL for a dashboard document. Guardian or admin only.
    """
    get_viewable_student(db, student_id, current_user)
    entry = find_entry(get_dashboard(db, student_id).documents, document_id, "Document")
    return FileUrlOut(url=access_url(storage, entry.url))


# ==========================================
# History and invoices
# ==========================================

@router.post("/{student_id}/history", response_model=DashboardOut)
def add_history_event(
    student_id: int,
    event: HistoryEventIn,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Adds an event to the student's timeline, which stays sorted by date.
    """
    ensure_admin(current_user, "add history events")
    dashboard = get_or_create_dashboard(db, student_id)

    dashboard.history.append(HistoryEvent(**event.model_dump()))
    sort_history(db, dashboard)
    return touch(db, dashboard)


@router.delete("/{student_id}/history/{history_id}", response_model=DashboardOut)
def remove_history_event(
    student_id: int,
    history_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    ensure_admin(current_user, "remove history events")
    dashboard = get_dashboard(db, student_id)
    entry = find_entry(dashboard.history, history_id, "History event")

    if entry.file_name:
        remove_stored_file(storage, entry.download_url)
    dashboard.history.remove(entry)
    return touch(db, dashboard)


@router.post("/{student_id}/history/{history_id}/receipt", response_model=DashboardOut)
def upload_invoice(
    student_id: int,
    history_id: int,
    receipt_file: Optional[UploadFile] = File(None, alias="receiptFile"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    """
    Attaches an invoice file to a receipt event, replacing any earlier one.
    """
    ensure_admin(current_user, "upload invoices")
    filename, content_type, data = read_upload(receipt_file, "Invoice file is required")
    dashboard = get_dashboard(db, student_id)
    entry = find_entry(dashboard.history, history_id, "History event")
    if entry.type != "receipt":
        raise ValidationFailed("Can only upload invoices for receipt events")

    url = store_upload(storage, "invoice", f"student-{student_id}", filename, content_type, data)
    remove_stored_file(storage, entry.download_url)
    entry.download_url = url
    entry.file_name = filename
    return touch(db, dashboard)


@router.delete("/{student_id}/history/{history_id}/receipt", response_model=DashboardOut)
def delete_invoice(
    student_id: int,
    history_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    ensure_admin(current_user, "delete invoices")
    dashboard = get_dashboard(db, student_id)
    entry = find_entry(dashboard.history, history_id, "History event")
    if not entry.download_url:
        raise ValidationFailed("No invoice file to delete")

    remove_stored_file(storage, entry.download_url)
    entry.download_url = None
    entry.file_name = None
    return touch(db, dashboard)


@router.get("/{student_id}/history/{history_id}/receipt/url", response_model=FileUrlOut)
def get_invoice_url(
    student_id: int,
    history_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    """
    Returns a download URL for the invoice attached to a receipt event.

    Raises:
        PermissionDenied: If the caller is neither the guardian nor an admin.
        NotFoundError: If the event is unknown or has no invoice file.
    """
    get_viewable_student(db, student_id, current_user)
    entry = find_entry(get_dashboard(db, student_id).history, history_id, "History event")
    if not entry.download_url:
        raise NotFoundError("Invoice file not found")
    return FileUrlOut(url=access_url(storage, entry.download_url))
