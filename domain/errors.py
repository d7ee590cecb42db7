from __future__ import annotations


class TaiXiuError(Exception):
    """
    Base class for failures surfaced to callers of the application layer.

    `kind` is a stable, machine-readable identifier; `message` is meant for
    the player.
    """

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TaiXiuError):
    kind = "validation_error"


class InsufficientFundsError(TaiXiuError):
    kind = "insufficient_funds"

    def __init__(self, message: str = "insufficient balance") -> None:
        super().__init__(message)


class ConcurrencyConflictError(InsufficientFundsError):
    """
    The balance changed between the precondition check and the commit.

    Shares `kind` with `InsufficientFundsError` so callers see one shape.
    """


class AccountNotFoundError(TaiXiuError):
    kind = "account_not_found"


class NotAuthorizedError(TaiXiuError):
    kind = "not_authorized"


class PersistenceError(TaiXiuError):
    kind = "persistence_error"

    def __init__(self, message: str = "server error") -> None:
        super().__init__(message)


class UsernameTakenError(TaiXiuError):
    kind = "username_taken"

    def __init__(self, message: str = "username taken") -> None:
        super().__init__(message)
