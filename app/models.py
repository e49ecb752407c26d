"""Account records and API response schemas."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel


# Fixed-width so that string comparison in SQL matches time ordering
DB_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """Format a datetime as UTC text for storage."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(DB_TIMESTAMP_FORMAT)


def from_db_timestamp(value: str) -> datetime:
    return datetime.strptime(value, DB_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class Provider(Enum):
    """Supported identity providers."""
    GOOGLE = "google"
    GITHUB = "github"

    @property
    def display_name(self) -> str:
        return {"google": "Google", "github": "GitHub"}[self.value]


@dataclass
class User:
    id: int
    email: str
    name: Optional[str]
    avatar_url: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "User":
        return cls(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            avatar_url=row["avatar_url"],
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )


@dataclass
class OAuthAccount:
    """A provider identity linked to a user."""
    id: int
    user_id: int
    provider: Provider
    provider_user_id: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "OAuthAccount":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            provider=Provider(row["provider"]),
            provider_user_id=row["provider_user_id"],
            created_at=from_db_timestamp(row["created_at"]),
        )


@dataclass
class Session:
    id: int
    user_id: int
    token_hash: str
    expires_at: datetime
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Session":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            token_hash=row["token_hash"],
            expires_at=from_db_timestamp(row["expires_at"]),
            created_at=from_db_timestamp(row["created_at"]),
        )


@dataclass
class ProviderProfile:
    """Provider profile normalized to the fields the account store needs."""
    provider_id: str
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None


# Response schemas

class UserSummary(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(id=user.id, email=user.email, name=user.name, avatar_url=user.avatar_url)


class LoginResponse(BaseModel):
    success: bool = True
    user: UserSummary


class MeResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "MeResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            avatar_url=user.avatar_url,
            created_at=user.created_at,
        )


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out successfully"
