"""
userstore/models/updates.py

Purpose: Typed partial updates

- One variant per kind of partial write on a user document
- Variants render their own field map; the repository adds updated_at
- UserUpdate is the discriminated union accepted by apply_update()
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from userstore.models.user import AccountStatus, Presence, PrivacySettings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _BaseUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, frozen=True)

    def to_fields(self) -> Dict[str, Any]:
        raise NotImplementedError


class ProfileUpdate(_BaseUpdate):
    """Only the fields that were given are written."""
    kind: Literal["profile"] = "profile"
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        return {
            name: value
            for name, value in (
                ("first_name", self.first_name),
                ("last_name", self.last_name),
                ("bio", self.bio),
                ("avatar", self.avatar),
            )
            if value is not None
        }


class PresenceUpdate(_BaseUpdate):
    kind: Literal["presence"] = "presence"
    presence: Presence
    last_active: datetime = Field(default_factory=_utcnow)

    def to_fields(self) -> Dict[str, Any]:
        return {"presence": self.presence, "last_active": self.last_active}


class TypingStatusUpdate(_BaseUpdate):
    """chat_id=None clears the typing indicator."""
    kind: Literal["typing_status"] = "typing_status"
    chat_id: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        return {"typing_in": self.chat_id}


class LastActiveUpdate(_BaseUpdate):
    kind: Literal["last_active"] = "last_active"
    last_active: datetime = Field(default_factory=_utcnow)

    def to_fields(self) -> Dict[str, Any]:
        return {"last_active": self.last_active}


class NotificationTokenUpdate(_BaseUpdate):
    kind: Literal["notification_token"] = "notification_token"
    token: str

    def to_fields(self) -> Dict[str, Any]:
        return {"fcm_token": self.token}


class PrivacyUpdate(_BaseUpdate):
    """Replaces the whole privacy block."""
    kind: Literal["privacy"] = "privacy"
    privacy: PrivacySettings

    def to_fields(self) -> Dict[str, Any]:
        return {"privacy": self.privacy.model_dump(mode="python")}


class AccountStatusUpdate(_BaseUpdate):
    kind: Literal["account_status"] = "account_status"
    status: AccountStatus

    def to_fields(self) -> Dict[str, Any]:
        return {"account_status": self.status}


class PremiumUpdate(_BaseUpdate):
    kind: Literal["premium"] = "premium"
    premium: bool
    expires_at: Optional[datetime] = None

    def to_fields(self) -> Dict[str, Any]:
        return {"premium": self.premium, "premium_expires": self.expires_at}


class SoftDeleteUpdate(_BaseUpdate):
    kind: Literal["soft_delete"] = "soft_delete"

    def to_fields(self) -> Dict[str, Any]:
        return {
            "account_status": AccountStatus.DELETED.value,
            "presence": Presence.OFFLINE.value,
        }


UserUpdate = Annotated[
    Union[
        ProfileUpdate,
        PresenceUpdate,
        TypingStatusUpdate,
        LastActiveUpdate,
        NotificationTokenUpdate,
        PrivacyUpdate,
        AccountStatusUpdate,
        PremiumUpdate,
        SoftDeleteUpdate,
    ],
    Field(discriminator="kind"),
]

_update_adapter = TypeAdapter(UserUpdate)


def parse_update(data: Dict[str, Any]) -> UserUpdate:
    """
    Builds the matching update variant from a plain dict with a ``kind`` key.

    Raises:
        pydantic.ValidationError: unknown kind or bad field values
    """
    return _update_adapter.validate_python(data)
