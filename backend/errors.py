"""Application error types shared by the blueprints and the statement pipeline."""


class AppError(Exception):
    """Base error carrying the HTTP status it maps to at the request boundary."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(AppError):
    """Bad input: missing file, unsupported extension, unmapped required column."""

    status_code = 400


class AuthorizationError(AppError):
    status_code = 403


class NotFoundError(AppError):
    """Resource absent or not owned by the caller."""

    status_code = 404


class ConflictError(AppError):
    """Resource is in a state that does not allow the operation (e.g. being processed)."""

    status_code = 409


class ExtractionError(AppError):
    """Stored file could not be opened or read as a statement."""

    status_code = 422


class ExtractionTimeoutError(ExtractionError):
    pass


class ClassificationError(AppError):
    """A single record could not be classified. Never fatal to a run."""

    status_code = 422


class PersistenceError(AppError):
    status_code = 500


class StorageError(AppError):
    status_code = 500


def statement_not_found(statement_id) -> str:
    return f"Statement {statement_id} not found"


def transaction_not_found(transaction_id) -> str:
    return f"Transaction {transaction_id} not found"


def profile_not_found(profile_id) -> str:
    return f"Business profile {profile_id} not found or inactive"
