"""
Database Schemas for Personal Finance App

Each Pydantic model describes either a MongoDB document as stored (records,
input fields) or what the API hands back to clients (views). Views are built
explicitly from records, so a password hash never reaches a response.
"""
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

TransactionType = Literal["income", "expense"]

EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")
PASSWORD_MIN_LENGTH = 6


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(value: str) -> str:
    return value.strip().lower()


def _parse_datetime(value: Any) -> Any:
    # A bare "YYYY-MM-DD" means midnight UTC of that day.
    if isinstance(value, str) and len(value.strip()) == 10:
        value = date.fromisoformat(value.strip())
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return value


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _object_id_str(document: Dict[str, Any]) -> str:
    return str(document["_id"])


# Users

class Registration(BaseModel):
    email: str
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)
    name: str

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = normalize_email(value)
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Please enter a valid email")
        return value

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value


class UserView(BaseModel):
    id: str
    email: str
    name: str
    created_at: datetime = Field(..., serialization_alias="createdAt")


class UserRecord(BaseModel):
    """A user document including the password hash. Never returned to clients."""

    id: str
    email: str
    name: str
    password: str
    created_at: datetime

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "UserRecord":
        return cls(
            id=_object_id_str(document),
            email=document["email"],
            name=document["name"],
            password=document["password"],
            created_at=document["created_at"],
        )

    def to_view(self) -> UserView:
        return UserView(id=self.id, email=self.email, name=self.name, created_at=self.created_at)


def user_view(document: Dict[str, Any]) -> UserView:
    return UserView(
        id=_object_id_str(document),
        email=document["email"],
        name=document["name"],
        created_at=document["created_at"],
    )


# Transactions

class TransactionFields(BaseModel):
    """A complete, valid transaction as written to the store."""

    model_config = ConfigDict(extra="forbid")

    type: TransactionType
    amount: float = Field(..., ge=0, allow_inf_nan=False)
    category: str
    description: Optional[str] = None
    date: datetime = Field(default_factory=utcnow)

    @field_validator("category")
    @classmethod
    def _check_category(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category is required")
        return value

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        if value is None:
            return utcnow()
        return _parse_datetime(value)

    @field_validator("date")
    @classmethod
    def _date_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class TransactionPatch(BaseModel):
    """A partial transaction. Only fields the client sent are applied."""

    model_config = ConfigDict(extra="forbid")

    type: Optional[TransactionType] = None
    amount: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    category: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None

    @field_validator("type", "amount", "date")
    @classmethod
    def _not_null(cls, value: Any, info) -> Any:
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value

    @field_validator("category")
    @classmethod
    def _check_category(cls, value: Optional[str]) -> str:
        if value is None or not value.strip():
            raise ValueError("Category is required")
        return value.strip()

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        return _parse_datetime(value)

    def to_update(self) -> Dict[str, Any]:
        update = self.model_dump(exclude_unset=True)
        if "date" in update:
            update["date"] = _as_utc(update["date"])
        return update


class TransactionView(BaseModel):
    id: str
    type: TransactionType
    amount: float
    category: str
    description: Optional[str] = None
    date: datetime
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "TransactionView":
        return cls(
            id=_object_id_str(document),
            type=document["type"],
            amount=document["amount"],
            category=document["category"],
            description=document.get("description"),
            date=document["date"],
            created_at=document["created_at"],
            updated_at=document["updated_at"],
        )


class Summary(BaseModel):
    total_income: float = 0.0
    total_expenses: float = 0.0
    balance: float = 0.0
    count: int = 0


# Auth

class TokenClaims(BaseModel):
    user_id: str
    email: str


class AuthResponse(BaseModel):
    message: str
    token: str
    token_type: str = "bearer"
    user: UserView
