"""
userstore - async data access for User documents.

    from userstore import UserRepository, InMemoryDocumentStore

    repository = UserRepository(InMemoryDocumentStore())
    result = await repository.get_user("user123")
"""

from userstore.core.exceptions import StoreFailure, UserStoreError
from userstore.core.result import Result
from userstore.db.memory import InMemoryDocumentStore
from userstore.db.store import DocumentStore
from userstore.models.user import AccountStatus, Presence, PrivacySettings, User, Visibility
from userstore.repositories.user_repository import UserRepository

__all__ = [
    "AccountStatus",
    "DocumentStore",
    "InMemoryDocumentStore",
    "Presence",
    "PrivacySettings",
    "Result",
    "StoreFailure",
    "User",
    "UserRepository",
    "UserStoreError",
    "Visibility",
]

__version__ = "1.0.0"
