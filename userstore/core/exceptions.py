from typing import Optional, Any


class UserStoreError(Exception):
    """
    Base exception for the userstore library.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.details = details
        super().__init__(self.message)


class StoreFailure(UserStoreError):
    """
    Wraps whatever the document store raised during an operation.

    This is the only failure a repository operation hands back. Callers that
    need to tell network errors from permission or missing-document errors
    inspect ``cause``.
    """
    def __init__(self, cause: BaseException, operation: Optional[str] = None):
        self.cause = cause
        self.operation = operation
        message = f"{operation} failed: {cause}" if operation else str(cause)
        super().__init__(message, code="STORE_FAILURE", details={"cause": type(cause).__name__})


class DocumentNotFoundError(UserStoreError):
    """
    Raised when a partial update targets a document that does not exist.
    """
    def __init__(self, doc_id: str):
        self.doc_id = doc_id
        super().__init__(f"No document with id '{doc_id}'", code="NOT_FOUND", details={"doc_id": doc_id})


class InvalidFieldError(UserStoreError):
    """
    Raised when a field map names fields the User document does not have.
    """
    def __init__(self, fields, message: str = "Unknown user fields"):
        self.fields = sorted(fields)
        super().__init__(f"{message}: {', '.join(self.fields)}", code="INVALID_FIELD", details=self.fields)


class DatabaseNotInitializedError(UserStoreError):
    """
    Raised when the Mongo client is used before connect_to_mongo().
    """
    def __init__(self, message: str = "Database not initialized. Call connect_to_mongo() during startup."):
        super().__init__(message, code="NOT_INITIALIZED")
