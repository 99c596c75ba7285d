"""
Tests for the typed update variants and the User model helpers.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from userstore.models.updates import (
    AccountStatusUpdate,
    LastActiveUpdate,
    NotificationTokenUpdate,
    PremiumUpdate,
    PresenceUpdate,
    PrivacyUpdate,
    ProfileUpdate,
    SoftDeleteUpdate,
    TypingStatusUpdate,
    parse_update,
)
from userstore.models.user import (
    AccountStatus,
    Presence,
    PrivacySettings,
    User,
    validate_field_path,
)

ALL_VARIANTS = [
    ProfileUpdate(first_name="A"),
    PresenceUpdate(presence=Presence.ONLINE),
    TypingStatusUpdate(chat_id="c1"),
    LastActiveUpdate(),
    NotificationTokenUpdate(token="t"),
    PrivacyUpdate(privacy=PrivacySettings()),
    AccountStatusUpdate(status=AccountStatus.SUSPENDED),
    PremiumUpdate(premium=True),
    SoftDeleteUpdate(),
]


@pytest.mark.parametrize("update", ALL_VARIANTS, ids=lambda u: u.kind)
def test_variants_only_name_user_fields(update):
    fields = update.to_fields()

    assert "updated_at" not in fields
    assert all(validate_field_path(name) for name in fields)


def test_profile_update_skips_missing_values():
    assert ProfileUpdate(bio="hi").to_fields() == {"bio": "hi"}
    assert ProfileUpdate().to_fields() == {}


def test_soft_delete_fields():
    assert SoftDeleteUpdate().to_fields() == {
        "account_status": "DELETED",
        "presence": "OFFLINE",
    }


def test_premium_update_clears_expiry_by_default():
    assert PremiumUpdate(premium=False).to_fields() == {
        "premium": False,
        "premium_expires": None,
    }


def test_parse_update_picks_variant_by_kind():
    update = parse_update({"kind": "presence", "presence": "AWAY"})

    assert isinstance(update, PresenceUpdate)
    assert update.to_fields()["presence"] == "AWAY"


def test_parse_update_rejects_unknown_kind():
    with pytest.raises(ValidationError):
        parse_update({"kind": "nickname", "value": "x"})


def test_presence_update_rejects_unknown_presence():
    with pytest.raises(ValidationError):
        PresenceUpdate(presence="SLEEPING")


def test_validate_field_path():
    assert validate_field_path("bio")
    assert validate_field_path("privacy.last_seen_exceptions")
    assert not validate_field_path("user_id")
    assert not validate_field_path("bioo")
    assert not validate_field_path("profile.bio")
    assert not validate_field_path("privacy.colour")


def test_user_document_round_trip_ignores_storage_key():
    user = User(user_id="u1", username="neo", presence=Presence.AWAY)

    document = {"_id": "u1", **user.to_document(), "legacy_field": 1}
    restored = User.from_document(document)

    assert restored.user_id == "u1"
    assert restored.username == "neo"
    assert restored.presence == Presence.AWAY


def test_user_from_document_uses_storage_key_when_id_missing():
    assert User.from_document({"_id": "abc", "username": "x"}).user_id == "abc"
    assert User.from_document(None) is None


def test_has_active_premium():
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)

    assert not User(user_id="a").has_active_premium(now)
    assert User(user_id="a", premium=True).has_active_premium(now)
    assert User(user_id="a", premium=True, premium_expires=now + timedelta(days=1)).has_active_premium(now)
    assert not User(user_id="a", premium=True, premium_expires=now - timedelta(days=1)).has_active_premium(now)


def test_display_name_falls_back():
    assert User(user_id="u1", first_name="Ann", last_name="Lee").display_name == "Ann Lee"
    assert User(user_id="u1", username="ann").display_name == "ann"
    assert User(user_id="u1").display_name == "u1"
