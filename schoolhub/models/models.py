from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from schoolhub.config.db import Base


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(80), unique=True, index=True, nullable=False)
    name = Column(String(120))
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default="user", nullable=False)  # user, tutor, admin

    # Parent/guardian contact details
    parent_first_name = Column(String)
    parent_middle_name = Column(String)
    parent_last_name = Column(String)
    parent_street_address = Column(String)
    parent_city = Column(String)
    parent_postal_code = Column(String)
    parent_country = Column(String)
    parent_nationality = Column(String)
    parent_passport_number = Column(String)
    parent_passport_expiry_date = Column(Date)
    parent_nif_number = Column(String)
    contact_number = Column(String)

    emergency_contact_relationship = Column(String)
    emergency_contact_name = Column(String)
    emergency_contact_number = Column(String)

    books = relationship("Book", back_populates="user", foreign_keys="Book.user_id")
    # No delete cascade: students outlive their guardian account
    students = relationship("Student", back_populates="user")

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def is_staff(self):
        return self.role in ("admin", "tutor")


class Book(Base):
    __tablename__ = "books"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    author = Column(String, default="Unknown Author")
    url = Column(String, nullable=False)
    language = Column(String, default="")
    difficulty = Column(String(20))  # Beginner, Intermediate, Advanced, Expert
    likes = Column(Integer, default=0)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))

    # Current loan
    is_lent = Column(Boolean, default=False, nullable=False)
    borrower_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    lent_date = Column(DateTime)
    due_date = Column(DateTime)

    user = relationship("User", back_populates="books", foreign_keys=[user_id])
    borrower = relationship("User", foreign_keys=[borrower_id])
    lending_history = relationship(
        "LendingRecord",
        back_populates="book",
        order_by="LendingRecord.id",
        cascade="all, delete-orphan",
    )

    @property
    def lending(self):
        return {
            "is_lent": self.is_lent,
            "borrower": self.borrower_id,
            "lent_date": self.lent_date,
            "due_date": self.due_date,
        }


class LendingRecord(Base):
    __tablename__ = "lending_history"
    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    borrower_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    lent_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    returned_date = Column(DateTime)
    is_returned = Column(Boolean, default=False, nullable=False)

    book = relationship("Book", back_populates="lending_history")


class Student(Base):
    __tablename__ = "students"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)

    # Personal information
    first_name = Column(String, nullable=False)
    middle_name = Column(String)
    last_name = Column(String, nullable=False)
    gender = Column(String, default="Other")
    date_of_birth = Column(Date, nullable=False)
    profile_picture = Column(String)

    # Address
    street_address = Column(String, nullable=False)
    city = Column(String, nullable=False)
    postal_code = Column(String, nullable=False)
    country = Column(String, nullable=False)
    nationality = Column(String, nullable=False)
    passport_number = Column(String, nullable=False)
    passport_expiry_date = Column(Date, nullable=False)
    nif_number = Column(String)

    # Academic background
    primary_school_stage = Column(String, default="Other")
    enrollment_length = Column(String, default="1 year (Residents)")
    weekday_attendance = Column(String, default="5 days/week")
    enrollment_start_date = Column(Date)
    siblings = Column(Boolean)
    current_school_in_portugal = Column(Boolean, default=False)
    first_language = Column(String)
    english_proficiency = Column(String, default="No prior knowledge")
    english_reading_writing = Column(String, default="No prior knowledge")
    portuguese_level = Column(String, default="No prior knowledge")
    skills_hobbies = Column(Text)
    struggling_subjects = Column(Text)

    # Approach and curriculum
    approach = Column(String, default="Other")
    curriculum = Column(String, default="Other")
    curriculum_supplier = Column(String)
    curriculum_notes = Column(Text)

    # Health and special needs
    behavioral_challenges = Column(Boolean, default=False)
    learning_differences = Column(Boolean, default=False)
    physical_limitations = Column(Boolean, default=False)
    health_conditions = Column(Boolean, default=False)
    daily_medication = Column(Boolean, default=False)
    medical_treatments = Column(Boolean, default=False)
    allergies = Column(Boolean, default=False)
    special_needs_details = Column(Text)
    life_threatening = Column(Boolean, default=False)
    medical_details = Column(Text)

    # Pricing and billing
    pricing = Column(String, default="Residents")
    discount = Column(String, default="None")
    payment_method = Column(String, default="Bank Transfer")
    billing_address_same_as_home = Column(Boolean, default=True)
    billing_street_address = Column(String)
    billing_city = Column(String)
    billing_postal_code = Column(String)
    billing_country = Column(String)
    additional_notes = Column(Text)
    signed_tuition_agreement = Column(Boolean, default=False)

    # Administrative
    referral_source = Column(String)
    motivation_for_joining = Column(JSON, default=list)
    photo_consent = Column(Boolean, default=False)
    contact_list_consent = Column(Boolean, default=False)
    terms_and_conditions = Column(Boolean, default=False)
    personal_data_consent = Column(Boolean, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="students")
    wishlist = relationship(
        "WishlistItem",
        back_populates="student",
        order_by="WishlistItem.id",
        cascade="all, delete-orphan",
    )
    dashboard = relationship(
        "Dashboard", back_populates="student", uselist=False, cascade="all, delete-orphan"
    )


class WishlistItem(Base):
    __tablename__ = "wishlist_items"
    __table_args__ = (UniqueConstraint("student_id", "book_id"),)
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    added_date = Column(DateTime, default=utcnow)

    student = relationship("Student", back_populates="wishlist")
    book = relationship("Book")


class Dashboard(Base):
    __tablename__ = "dashboards"
    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    student = relationship("Student", back_populates="dashboard")
    portfolios = relationship(
        "Portfolio", order_by="Portfolio.id", cascade="all, delete-orphan"
    )
    documents = relationship(
        "DashboardDocument", order_by="DashboardDocument.id", cascade="all, delete-orphan"
    )
    history = relationship(
        "HistoryEvent",
        order_by=lambda: [HistoryEvent.date, HistoryEvent.id],
        cascade="all, delete-orphan",
    )


class Portfolio(Base):
    __tablename__ = "portfolios"
    id = Column(Integer, primary_key=True, index=True)
    dashboard_id = Column(Integer, ForeignKey("dashboards.id", ondelete="CASCADE"), nullable=False)
    pdf_url = Column(String, nullable=False)
    file_name = Column(String, nullable=False)
    upload_date = Column(DateTime, default=utcnow)


class DashboardDocument(Base):
    __tablename__ = "dashboard_documents"
    id = Column(Integer, primary_key=True, index=True)
    dashboard_id = Column(Integer, ForeignKey("dashboards.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    file_name = Column(String)
    upload_date = Column(DateTime, default=utcnow)


class HistoryEvent(Base):
    __tablename__ = "history_events"
    id = Column(Integer, primary_key=True, index=True)
    dashboard_id = Column(Integer, ForeignKey("dashboards.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False)  # enrollment_start, receipt, enrollment_end
    date = Column(DateTime, nullable=False)
    month = Column(String)
    year = Column(Integer)
    payment_status = Column(String(10), default="not_paid")  # paid, not_paid
    download_url = Column(String)
    file_name = Column(String)
    description = Column(Text)
