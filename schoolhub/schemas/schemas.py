import datetime
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


Role = Literal["user", "tutor", "admin"]
Difficulty = Literal["Beginner", "Intermediate", "Advanced", "Expert"]
Gender = Literal["Male", "Female", "Other"]
PrimarySchoolStage = Literal[
    "Learn to Read and Write", "Ages 6-7", "Ages 7-8", "Ages 8-9", "Ages 9-10",
    "Ages 10-11", "Ages 11-12", "Other",
]
EnrollmentLength = Literal[
    "6 months (Residents)", "1 year (Residents)", "Multiple years (Residents)",
    "1 month (Traveling family)", "2 months (Traveling Family)",
    "3 months (Traveling Family)",
]
WeekdayAttendance = Literal[
    "1 day/week", "2 days/week", "3 days/week", "4 days/week", "5 days/week"
]
Proficiency = Literal[
    "No prior knowledge", "Beginner", "Intermediate", "Proficient", "Fluent"
]
ReadingWriting = Literal["No prior knowledge", "Beginner", "Intermediate", "Advanced"]
Approach = Literal[
    "Unschooling", "Core Education", "Qualifications for higher education", "Other"
]
Curriculum = Literal["Online School", "Workbook Curriculum", "Mix and Match", "Other"]
Pricing = Literal["Residents", "Financial Hardship", "Traveling Families"]
Discount = Literal[
    "Sibling Discount", "Early Payment Discount", "Referral Discount", "Other", "None"
]
PaymentMethod = Literal[
    "Bank Transfer", "Cash", "SEPA direct debit", "MBWay", "Stripe", "Bitcoin", "Other"
]
Motivation = Literal[
    "Alternative / more holistic education",
    "Democratic / self-directed learning approach",
    "To be part of a community",
    "Quality of teachers",
    "The values and culture of the school",
    "The campus and natural environment",
    "A sense of adventure / Madeira",
    "Traveling family looking for short-term enrollments",
    "Other",
]
HistoryType = Literal["enrollment_start", "receipt", "enrollment_end"]
PaymentStatus = Literal["paid", "not_paid"]

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


# ==========================================
# Users
# ==========================================

class GuardianFields(CamelModel):
    parent_first_name: Optional[str] = None
    parent_middle_name: Optional[str] = None
    parent_last_name: Optional[str] = None
    parent_street_address: Optional[str] = None
    parent_city: Optional[str] = None
    parent_postal_code: Optional[str] = None
    parent_country: Optional[str] = None
    parent_nationality: Optional[str] = None
    parent_passport_number: Optional[str] = None
    parent_passport_expiry_date: Optional[datetime.date] = None
    parent_nif_number: Optional[str] = None
    contact_number: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_number: Optional[str] = None


class UserCreate(CamelModel):
    username: str
    name: Optional[str] = None
    email: str
    password: str
    role: Role = "user"


class UserUpdate(GuardianFields):
    name: Optional[str] = None
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    password: Optional[str] = None
    role: Optional[Role] = None


class BookSummary(CamelModel):
    id: int
    title: str
    author: Optional[str] = None
    url: str


class StudentSummary(CamelModel):
    id: int
    first_name: str
    last_name: str


class UserSummary(CamelModel):
    id: int
    username: str
    name: Optional[str] = None
    email: Optional[str] = None


class UserOut(GuardianFields):
    id: int
    username: str
    name: Optional[str] = None
    email: str
    role: Role
    books: List[BookSummary] = []
    students: List[StudentSummary] = []


# ==========================================
# Login
# ==========================================

class LoginRequest(CamelModel):
    username: str
    password: str
    remember_me: bool = False


class LoginResponse(GuardianFields):
    token: str
    id: int
    username: str
    name: Optional[str] = None
    email: str
    role: Role
    remember_me: bool = False


# ==========================================
# Books
# ==========================================

class BookCreate(CamelModel):
    title: str = Field(..., min_length=1)
    author: Optional[str] = None
    url: str = Field(..., min_length=1)
    language: str = ""
    difficulty: Optional[Difficulty] = None
    likes: int = 0


class BookUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = None
    url: Optional[str] = Field(None, min_length=1)
    language: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    likes: Optional[int] = Field(None, ge=0)


class LendRequest(CamelModel):
    borrower_id: Optional[int] = None


class LendingOut(CamelModel):
    is_lent: bool = False
    borrower: Optional[int] = None
    lent_date: Optional[datetime.datetime] = None
    due_date: Optional[datetime.datetime] = None


class LendingRecordOut(CamelModel):
    id: int
    borrower: Optional[int] = Field(None, validation_alias=AliasChoices("borrower_id", "borrower"))
    lent_date: datetime.datetime
    due_date: datetime.datetime
    returned_date: Optional[datetime.datetime] = None
    is_returned: bool


class BookOut(CamelModel):
    id: int
    title: str
    author: Optional[str] = None
    url: str
    language: Optional[str] = ""
    difficulty: Optional[Difficulty] = None
    likes: int = 0
    user: Optional[UserSummary] = None
    lending: LendingOut
    lending_history: List[LendingRecordOut] = []


class BookPage(CamelModel):
    items: List[BookOut]
    total: int
    page: int
    limit: int
    total_pages: int


class BookStats(CamelModel):
    total_likes: int
    favorite_book: Optional[BookSummary] = None
    most_books: Optional[dict] = None
    most_likes: Optional[dict] = None


# ==========================================
# Students
# ==========================================

class StudentFields(CamelModel):
    middle_name: Optional[str] = None
    nif_number: Optional[str] = None
    enrollment_start_date: Optional[datetime.date] = None
    siblings: Optional[bool] = None
    first_language: Optional[str] = None
    skills_hobbies: Optional[str] = None
    struggling_subjects: Optional[str] = None
    curriculum_supplier: Optional[str] = None
    curriculum_notes: Optional[str] = None
    special_needs_details: Optional[str] = None
    medical_details: Optional[str] = None
    billing_street_address: Optional[str] = None
    billing_city: Optional[str] = None
    billing_postal_code: Optional[str] = None
    billing_country: Optional[str] = None
    additional_notes: Optional[str] = None
    referral_source: Optional[str] = None


class StudentCreate(StudentFields):
    user_id: Optional[int] = None
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    gender: Gender = "Other"
    date_of_birth: datetime.date
    street_address: str
    city: str
    postal_code: str
    country: str
    nationality: str
    passport_number: str
    passport_expiry_date: datetime.date

    primary_school_stage: PrimarySchoolStage = "Other"
    enrollment_length: EnrollmentLength = "1 year (Residents)"
    weekday_attendance: WeekdayAttendance = "5 days/week"
    current_school_in_portugal: bool = False
    english_proficiency: Proficiency = "No prior knowledge"
    english_reading_writing: ReadingWriting = "No prior knowledge"
    portuguese_level: Proficiency = "No prior knowledge"
    approach: Approach = "Other"
    curriculum: Curriculum = "Other"

    behavioral_challenges: bool = False
    learning_differences: bool = False
    physical_limitations: bool = False
    health_conditions: bool = False
    daily_medication: bool = False
    medical_treatments: bool = False
    allergies: bool = False
    life_threatening: bool = False

    pricing: Pricing = "Residents"
    discount: Discount = "None"
    payment_method: PaymentMethod = "Bank Transfer"
    billing_address_same_as_home: bool = True
    signed_tuition_agreement: bool = False

    motivation_for_joining: List[Motivation] = []
    photo_consent: bool = False
    contact_list_consent: bool = False
    terms_and_conditions: bool = False
    personal_data_consent: bool = False

    @field_validator("first_name", "last_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class StudentUpdate(StudentFields):
    """Every field optional; only the ones sent are written."""

    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    gender: Optional[Gender] = None
    date_of_birth: Optional[datetime.date] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    nationality: Optional[str] = None
    passport_number: Optional[str] = None
    passport_expiry_date: Optional[datetime.date] = None

    primary_school_stage: Optional[PrimarySchoolStage] = None
    enrollment_length: Optional[EnrollmentLength] = None
    weekday_attendance: Optional[WeekdayAttendance] = None
    current_school_in_portugal: Optional[bool] = None
    english_proficiency: Optional[Proficiency] = None
    english_reading_writing: Optional[ReadingWriting] = None
    portuguese_level: Optional[Proficiency] = None
    approach: Optional[Approach] = None
    curriculum: Optional[Curriculum] = None

    behavioral_challenges: Optional[bool] = None
    learning_differences: Optional[bool] = None
    physical_limitations: Optional[bool] = None
    health_conditions: Optional[bool] = None
    daily_medication: Optional[bool] = None
    medical_treatments: Optional[bool] = None
    allergies: Optional[bool] = None
    life_threatening: Optional[bool] = None

    pricing: Optional[Pricing] = None
    discount: Optional[Discount] = None
    payment_method: Optional[PaymentMethod] = None
    billing_address_same_as_home: Optional[bool] = None
    signed_tuition_agreement: Optional[bool] = None

    motivation_for_joining: Optional[List[Motivation]] = None
    photo_consent: Optional[bool] = None
    contact_list_consent: Optional[bool] = None
    terms_and_conditions: Optional[bool] = None
    personal_data_consent: Optional[bool] = None


class WishlistAdd(CamelModel):
    book_id: int


class WishlistItemOut(CamelModel):
    book: BookSummary
    added_date: datetime.datetime


class StudentOut(StudentCreate):
    id: int
    user_id: Optional[int] = None
    user: Optional[UserSummary] = None
    profile_picture: Optional[str] = None
    motivation_for_joining: List[str] = []
    wishlist: List[WishlistItemOut] = []
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None


# ==========================================
# Dashboards
# ==========================================

class PortfolioOut(CamelModel):
    id: int
    pdf_url: str
    file_name: str
    upload_date: datetime.datetime


class DocumentOut(CamelModel):
    id: int
    name: str
    url: str
    file_name: Optional[str] = None
    upload_date: datetime.datetime


def naive_utc(value):
    """Stored datetimes are naive UTC; convert aware input to match."""
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value


class HistoryEventIn(CamelModel):
    type: HistoryType
    date: datetime.datetime
    month: Optional[str] = None
    year: Optional[int] = None
    payment_status: PaymentStatus = "not_paid"
    description: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _naive_date(cls, v):
        return naive_utc(v)


class HistoryEventPatch(CamelModel):
    id: int
    date: Optional[datetime.datetime] = None
    month: Optional[str] = None
    year: Optional[int] = None
    payment_status: Optional[PaymentStatus] = None
    description: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _naive_date(cls, v):
        return naive_utc(v)


class HistoryEventOut(CamelModel):
    id: int
    type: HistoryType
    date: datetime.datetime
    month: Optional[str] = None
    year: Optional[int] = None
    payment_status: PaymentStatus = "not_paid"
    download_url: Optional[str] = None
    file_name: Optional[str] = None
    description: Optional[str] = None


class DashboardUpdate(CamelModel):
    history: List[HistoryEventPatch] = []


class DashboardOut(CamelModel):
    id: int
    student_id: int
    student: Optional[StudentSummary] = None
    portfolios: List[PortfolioOut] = []
    documents: List[DocumentOut] = []
    history: List[HistoryEventOut] = []
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None


class FileUrlOut(CamelModel):
    url: str
