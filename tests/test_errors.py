import pytest

from userstore.core.exceptions import (
    DatabaseNotInitializedError,
    DocumentNotFoundError,
    InvalidFieldError,
    StoreFailure,
    UserStoreError,
)
from userstore.core.result import Result


def test_store_failure_wraps_cause():
    cause = TimeoutError("deadline exceeded")
    failure = StoreFailure(cause, "get_user")

    assert isinstance(failure, UserStoreError)
    assert failure.cause is cause
    assert failure.code == "STORE_FAILURE"
    assert failure.details == {"cause": "TimeoutError"}
    assert failure.message == "get_user failed: deadline exceeded"


def test_custom_exceptions_carry_codes():
    assert DocumentNotFoundError("u1").code == "NOT_FOUND"
    assert DocumentNotFoundError("u1").doc_id == "u1"
    assert InvalidFieldError(["b", "a"]).fields == ["a", "b"]
    assert DatabaseNotInitializedError().code == "NOT_INITIALIZED"


def test_success_result():
    result = Result.success(42)

    assert result.is_success and not result.is_failure
    assert result.unwrap() == 42
    assert result.get_or_none() == 42
    assert result.to_dict() == {"success": True, "value": 42}


def test_success_may_hold_none():
    result = Result.success(None)

    assert result.is_success
    assert result.unwrap() is None


def test_failure_result():
    error = StoreFailure(ConnectionError("down"), "delete_user")
    result = Result.failure(error)

    assert result.is_failure
    assert result.get_or_none() is None
    assert result.get_or_default([]) == []
    with pytest.raises(StoreFailure) as excinfo:
        result.unwrap()
    assert excinfo.value is error

    data = result.to_dict()
    assert data["success"] is False
    assert data["code"] == "STORE_FAILURE"
    assert data["details"] == {"cause": "ConnectionError"}
