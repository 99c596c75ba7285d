"""
userstore/repositories/user_repository.py

Purpose: User data access

- CRUD, lookups and prefix search on the users collection
- Typed partial updates; every field write stamps updated_at
- Atomic set-style updates on block/mute/privacy-exception lists
- Soft and hard deletes, atomic batch deletes and presence updates
- Real-time observation of a single user
- Every operation returns a Result; store errors never escape
"""

import asyncio
import functools
import inspect
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from userstore.core.config import settings
from userstore.core.exceptions import InvalidFieldError, StoreFailure
from userstore.core.logging import LogContext, get_logger
from userstore.core.result import Result
from userstore.db.store import (
    SERVER_TIMESTAMP,
    DeleteOperation,
    DocumentStore,
    FieldFilter,
    OrderBy,
    UpdateOperation,
)
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
    UserUpdate,
)
from userstore.models.user import (
    PRIVACY_EXCEPTION_FIELDS,
    AccountStatus,
    Presence,
    PrivacySettings,
    User,
    validate_field_path,
)
from userstore.utils.batching import chunked, unique

logger = get_logger(__name__)

# Upper bound appended to a prefix for range-based prefix search
PREFIX_SENTINEL = "\uf8ff"

UPDATED_AT = "updated_at"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _plain(value: Any) -> Any:
    """Enum and model values as the store should see them."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="python")
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


def _flatten(data: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """
    Nested maps as dotted paths, so a merge write only touches the leaves
    it names: {"privacy": {"about": "NOBODY"}} -> {"privacy.about": "NOBODY"}.
    An empty map names no leaves and writes nothing.
    """
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{path}."))
        else:
            flat[path] = value
    return flat


def store_operation(func):
    """
    Runs a repository coroutine and folds its outcome into a Result.
    Any exception becomes Result.failure(StoreFailure(cause)).
    """
    operation = func.__name__
    params = list(inspect.signature(func).parameters)
    logs_user_id = len(params) > 1 and params[1] == "user_id"

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs) -> Result:
        try:
            return Result.success(await func(self, *args, **kwargs))
        except Exception as e:
            extra = {"operation": operation}
            user_id = args[0] if args else kwargs.get("user_id")
            if logs_user_id and user_id is not None:
                extra["user_id"] = user_id
            logger.error(f"{operation} failed: {e}", extra=extra)
            return Result.failure(StoreFailure(e, operation))

    return wrapper


class UserRepository:
    """
    Repository for User documents.

    Attributes:
        store: DocumentStore bound to the users collection
        chunk_size: Maximum ids per membership query in get_users()
    """

    def __init__(self, store: DocumentStore, chunk_size: Optional[int] = None):
        self.store = store
        self.chunk_size = chunk_size or settings.BATCH_QUERY_CHUNK_SIZE

    # ==================== CREATE ====================

    @store_operation
    async def create_user(self, user: User) -> User:
        """
        Writes a new user document keyed by ``user.user_id``.

        Returns:
            The stored user (created_at filled in when missing)
        """
        if not user.user_id:
            raise ValueError("user_id is required; use create_user_with_auto_id()")
        if user.created_at is None:
            user = user.model_copy(update={"created_at": _utcnow()})

        await self.store.set(user.user_id, user.to_document())
        logger.info("User created", extra={"user_id": user.user_id})
        return user

    @store_operation
    async def create_user_with_auto_id(self, user: User) -> User:
        """
        Writes a new user under an id allocated by the store.

        Returns:
            Copy of ``user`` carrying the new user_id
        """
        new_user = user.model_copy(update={
            "user_id": self.store.new_id(),
            "created_at": user.created_at or _utcnow(),
        })
        await self.store.set(new_user.user_id, new_user.to_document())
        logger.info("User created with generated id", extra={"user_id": new_user.user_id})
        return new_user

    # ==================== READ ====================

    @store_operation
    async def get_user(self, user_id: str) -> Optional[User]:
        """Point read; None when the user does not exist."""
        return User.from_document(await self.store.get(user_id))

    @store_operation
    async def get_user_by_field(self, field: str, value: Any) -> Optional[User]:
        """First user whose ``field`` equals ``value``, or None."""
        return await self._first_by(field, value)

    @store_operation
    async def get_user_by_username(self, username: str) -> Optional[User]:
        return await self._first_by("username", username)

    @store_operation
    async def get_user_by_phone(self, phone: str) -> Optional[User]:
        return await self._first_by("phone", phone)

    async def _first_by(self, field: str, value: Any) -> Optional[User]:
        if not validate_field_path(field) and field != "user_id":
            raise InvalidFieldError([field])
        documents = await self.store.query([FieldFilter(field, "==", _plain(value))], limit=1)
        return User.from_document(documents[0]) if documents else None

    @store_operation
    async def get_users(self, user_ids: Sequence[str]) -> List[User]:
        """
        Looks up many users, one membership query per chunk of ids.

        Missing ids are skipped; repeated ids are queried once. The order
        of the returned users is not guaranteed.
        """
        ids = unique(user_ids)
        if not ids:
            return []

        users: List[User] = []
        seen = set()
        for index, chunk in enumerate(chunked(ids, self.chunk_size)):
            documents = await self.store.query([FieldFilter("user_id", "in", chunk)])
            logger.debug(
                f"Fetched {len(documents)} users for chunk of {len(chunk)} ids",
                extra={"chunk": index},
            )
            for document in documents:
                user = User.from_document(document)
                if user.user_id not in seen:
                    seen.add(user.user_id)
                    users.append(user)
        return users

    @store_operation
    async def search_by_prefix(self, field: str, prefix: str, limit: Optional[int] = None) -> List[User]:
        """
        Users whose ``field`` starts with ``prefix``, ordered by that field.

        Uses the range [prefix, prefix + PREFIX_SENTINEL) so a plain index
        on the field is enough.
        """
        return await self._search(field, prefix, limit)

    @store_operation
    async def search_users(self, query: str, limit: Optional[int] = None) -> List[User]:
        """
        Autocomplete on usernames. Usernames are stored lowercase, so the
        query is lowercased first.
        """
        return await self._search("username", query.strip().lower(), limit)

    async def _search(self, field: str, prefix: str, limit: Optional[int]) -> List[User]:
        if not validate_field_path(field):
            raise InvalidFieldError([field])
        limit = limit if limit is not None else settings.DEFAULT_SEARCH_LIMIT
        if limit < 1:
            return []

        documents = await self.store.query(
            [
                FieldFilter(field, ">=", prefix),
                FieldFilter(field, "<", prefix + PREFIX_SENTINEL),
            ],
            order_by=OrderBy(field),
            limit=limit,
        )
        return [User.from_document(document) for document in documents]

    async def observe_user(self, user_id: str) -> AsyncIterator[Result[Optional[User]]]:
        """
        Yields the current user, then a new snapshot on every change.

        Snapshots are None while the document does not exist. A listener
        error is yielded as a failure and ends the stream; iterate again to
        restart. The store subscription is released when the consumer stops
        iterating (close the generator, e.g. with contextlib.aclosing).
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_snapshot(snapshot, error):
            # Stores may call back from their own thread
            loop.call_soon_threadsafe(queue.put_nowait, (snapshot, error))

        try:
            subscription = self.store.watch(user_id, on_snapshot)
        except Exception as e:
            logger.error(f"observe_user failed: {e}", extra={"user_id": user_id})
            yield Result.failure(StoreFailure(e, "observe_user"))
            return

        logger.debug("Observing user", extra={"user_id": user_id})
        try:
            while True:
                snapshot, error = await queue.get()
                if error is not None:
                    logger.error(f"observe_user listener failed: {error}", extra={"user_id": user_id})
                    yield Result.failure(StoreFailure(error, "observe_user"))
                    return
                try:
                    user = User.from_document(snapshot)
                except Exception as e:
                    yield Result.failure(StoreFailure(e, "observe_user"))
                    return
                yield Result.success(user)
        finally:
            subscription.unsubscribe()
            logger.debug("Stopped observing user", extra={"user_id": user_id})

    # ==================== UPDATE ====================

    @store_operation
    async def update_user(self, user: User) -> None:
        """
        Merge write: fields set on ``user`` overwrite, all others are kept.
        """
        if not user.user_id:
            raise ValueError("user_id is required")
        data = _flatten(_plain(user.model_dump(mode="python", exclude_unset=True)))
        data["user_id"] = user.user_id
        await self.store.set(user.user_id, data, merge=True)

    @store_operation
    async def update_fields(self, user_id: str, fields: Mapping[str, Any]) -> None:
        """
        Partial write of named fields (``privacy.<setting>`` allowed).

        updated_at is always set to the store's timestamp, replacing any
        value the caller supplied.

        Raises (as failure):
            InvalidFieldError: For names that are not User fields
        """
        invalid = [name for name in fields if name != UPDATED_AT and not validate_field_path(name)]
        if invalid:
            raise InvalidFieldError(invalid)
        await self._write_fields(user_id, fields)

    @store_operation
    async def apply_update(self, user_id: str, update: UserUpdate) -> None:
        """Writes one typed update variant."""
        await self._write(user_id, update)

    async def _write(self, user_id: str, update: UserUpdate) -> None:
        with LogContext(user_id=user_id, operation=update.kind):
            await self._write_fields(user_id, update.to_fields())
            logger.debug(f"Applied {update.kind} update")

    async def _write_fields(self, user_id: str, fields: Mapping[str, Any]) -> None:
        written: Dict[str, Any] = {name: _plain(value) for name, value in fields.items()}
        written[UPDATED_AT] = SERVER_TIMESTAMP
        await self.store.update(user_id, written)

    @store_operation
    async def update_profile(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        bio: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> None:
        await self._write(user_id, ProfileUpdate(
            first_name=first_name, last_name=last_name, bio=bio, avatar=avatar
        ))

    @store_operation
    async def update_presence(self, user_id: str, presence: Presence) -> None:
        """Sets presence and refreshes last_active."""
        await self._write(user_id, PresenceUpdate(presence=presence))

    @store_operation
    async def update_typing_status(self, user_id: str, chat_id: Optional[str]) -> None:
        await self._write(user_id, TypingStatusUpdate(chat_id=chat_id))

    @store_operation
    async def update_last_active(self, user_id: str) -> None:
        await self._write(user_id, LastActiveUpdate())

    @store_operation
    async def update_fcm_token(self, user_id: str, token: str) -> None:
        await self._write(user_id, NotificationTokenUpdate(token=token))

    @store_operation
    async def update_privacy(self, user_id: str, privacy: PrivacySettings) -> None:
        await self._write(user_id, PrivacyUpdate(privacy=privacy))

    @store_operation
    async def update_account_status(self, user_id: str, status: AccountStatus) -> None:
        await self._write(user_id, AccountStatusUpdate(status=status))

    @store_operation
    async def set_premium(self, user_id: str, premium: bool, expires_at: Optional[datetime] = None) -> None:
        await self._write(user_id, PremiumUpdate(premium=premium, expires_at=expires_at))

    @store_operation
    async def block_user(self, user_id: str, target_user_id: str) -> None:
        await self.store.array_union(user_id, "blocked_users", [target_user_id])
        logger.info(f"Blocked {target_user_id}", extra={"user_id": user_id})

    @store_operation
    async def unblock_user(self, user_id: str, target_user_id: str) -> None:
        await self.store.array_remove(user_id, "blocked_users", [target_user_id])
        logger.info(f"Unblocked {target_user_id}", extra={"user_id": user_id})

    @store_operation
    async def mute_chat(self, user_id: str, chat_id: str) -> None:
        await self.store.array_union(user_id, "muted_chats", [chat_id])

    @store_operation
    async def unmute_chat(self, user_id: str, chat_id: str) -> None:
        await self.store.array_remove(user_id, "muted_chats", [chat_id])

    @store_operation
    async def add_privacy_exception(
        self,
        user_id: str,
        target_user_id: str,
        field: str = "last_seen_exceptions",
    ) -> None:
        """
        Adds ``target_user_id`` to one of the privacy exception lists.
        """
        await self.store.array_union(user_id, self._privacy_path(field), [target_user_id])

    @store_operation
    async def remove_privacy_exception(
        self,
        user_id: str,
        target_user_id: str,
        field: str = "last_seen_exceptions",
    ) -> None:
        await self.store.array_remove(user_id, self._privacy_path(field), [target_user_id])

    @staticmethod
    def _privacy_path(field: str) -> str:
        if field not in PRIVACY_EXCEPTION_FIELDS:
            raise InvalidFieldError([field], message="Unknown privacy exception list")
        return f"privacy.{field}"

    # ==================== DELETE ====================

    @store_operation
    async def soft_delete_user(self, user_id: str) -> None:
        """
        Marks the account DELETED and OFFLINE; the document is kept.
        """
        await self._write(user_id, SoftDeleteUpdate())
        logger.info("User soft-deleted", extra={"user_id": user_id})

    @store_operation
    async def delete_user(self, user_id: str) -> None:
        """Permanently removes the document."""
        await self.store.delete(user_id)
        logger.info("User deleted", extra={"user_id": user_id})

    @store_operation
    async def delete_users(self, user_ids: Sequence[str]) -> None:
        """
        Removes all listed users in one atomic batch.
        """
        ids = unique(user_ids)
        if not ids:
            return
        await self.store.commit_batch([DeleteOperation(user_id) for user_id in ids])
        logger.info(f"Deleted {len(ids)} users in one batch")

    # ==================== BATCH OPERATIONS ====================

    @store_operation
    async def batch_update_presence(self, user_presences: Mapping[str, Presence]) -> None:
        """
        Sets presence for many users in one atomic batch. All of them get
        the same last_active value.
        """
        if not user_presences:
            return
        timestamp = _utcnow()
        operations = [
            UpdateOperation(user_id, {
                "presence": Presence(presence).value,
                "last_active": timestamp,
                UPDATED_AT: SERVER_TIMESTAMP,
            })
            for user_id, presence in user_presences.items()
        ]
        await self.store.commit_batch(operations)
        logger.info(f"Updated presence for {len(operations)} users")

    # ==================== UTILITY ====================

    @store_operation
    async def is_username_available(self, username: str) -> bool:
        documents = await self.store.query([FieldFilter("username", "==", username)], limit=1)
        return not documents

    @store_operation
    async def user_exists(self, user_id: str) -> bool:
        return await self.store.get(user_id) is not None

    @store_operation
    async def get_online_users_count(self) -> int:
        return await self.store.count([FieldFilter("presence", "==", Presence.ONLINE.value)])

    @store_operation
    async def get_premium_users(self, limit: Optional[int] = None) -> List[User]:
        limit = limit if limit is not None else settings.DEFAULT_PREMIUM_LIMIT
        if limit < 1:
            return []
        documents = await self.store.query([FieldFilter("premium", "==", True)], limit=limit)
        return [User.from_document(document) for document in documents]
