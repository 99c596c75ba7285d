"""
userstore/models/user.py

Purpose: User document model

- Identity (user_id is also the document key)
- Profile and contact fields
- Presence, typing and account status
- Privacy settings with per-user exception lists
- Block/mute lists, premium flags and timestamps
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


class Presence(str, Enum):
    """Online presence shown to other users."""
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    AWAY = "AWAY"


class AccountStatus(str, Enum):
    """Lifecycle of an account. DELETED marks a soft delete."""
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    DELETED = "DELETED"


class Visibility(str, Enum):
    EVERYONE = "EVERYONE"
    CONTACTS = "CONTACTS"
    NOBODY = "NOBODY"


class PrivacySettings(BaseModel):
    """
    Who can see what. Each exception list holds user ids that are treated
    as the opposite of the visibility level.
    """
    model_config = ConfigDict(use_enum_values=True, extra="ignore")

    last_seen: Visibility = Visibility.EVERYONE
    profile_photo: Visibility = Visibility.EVERYONE
    about: Visibility = Visibility.EVERYONE
    last_seen_exceptions: List[str] = Field(default_factory=list)
    profile_photo_exceptions: List[str] = Field(default_factory=list)
    about_exceptions: List[str] = Field(default_factory=list)


# Exception lists addressable as "privacy.<name>"
PRIVACY_EXCEPTION_FIELDS: Set[str] = {
    "last_seen_exceptions",
    "profile_photo_exceptions",
    "about_exceptions",
}


class User(BaseModel):
    """
    A user document stored in the users collection.
    """
    model_config = ConfigDict(use_enum_values=True, extra="ignore")

    user_id: str = ""

    # Profile
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None

    # Contact
    email: Optional[str] = None
    phone: Optional[str] = None

    # Status
    presence: Presence = Presence.OFFLINE
    typing_in: Optional[str] = None
    account_status: AccountStatus = AccountStatus.ACTIVE
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)

    # Relations (used as sets)
    blocked_users: List[str] = Field(default_factory=list)
    muted_chats: List[str] = Field(default_factory=list)

    # Premium
    premium: bool = False
    premium_expires: Optional[datetime] = None

    # Notifications
    fcm_token: Optional[str] = None

    # Timestamps
    created_at: Optional[datetime] = None
    last_active: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.username or self.user_id

    @property
    def is_deleted(self) -> bool:
        return self.account_status == AccountStatus.DELETED

    def has_active_premium(self, now: Optional[datetime] = None) -> bool:
        """Premium with no expiry never lapses."""
        if not self.premium:
            return False
        if self.premium_expires is None:
            return True
        now = now or datetime.now(timezone.utc)
        expires = self.premium_expires
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires > now

    def to_document(self) -> Dict[str, Any]:
        """
        Plain dict written to the store. None values are kept so that a
        merge write overwrites them explicitly.
        """
        return self.model_dump(mode="python")

    @classmethod
    def from_document(cls, document: Optional[Dict[str, Any]]) -> Optional["User"]:
        """
        Builds a User from a stored document; unknown keys are ignored.
        """
        if document is None:
            return None
        data = {key: value for key, value in document.items() if key != "_id"}
        if not data.get("user_id") and "_id" in document:
            data["user_id"] = str(document["_id"])
        return cls.model_validate(data)


# Top-level keys a field map may name
USER_FIELDS: Set[str] = set(User.model_fields)


def validate_field_path(path: str) -> bool:
    """
    True if ``path`` names a writable User field, including the nested
    ``privacy.<setting>`` form.
    """
    if path == "user_id":
        return False
    if "." not in path:
        return path in USER_FIELDS
    head, _, tail = path.partition(".")
    return head == "privacy" and tail in PrivacySettings.model_fields
