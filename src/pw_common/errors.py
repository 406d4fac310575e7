"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Validation (amounts, splits, idempotency keys)
  2xxx: Balance
  3xxx: Withdrawal
  4xxx: Wallet/Member
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Validation ---

class InvalidAmountError(AppError):
    def __init__(self, amount: int) -> None:
        super().__init__(
            1001,
            f"Amount must be a positive integer in minor units that fits BIGINT, got {amount}",
            422,
        )


class InvalidSplitError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(1002, f"Invalid split: {detail}", 422)


class MissingTransactionIdError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "transaction_id must be a non-empty string", 422)


class DuplicateTransactionError(AppError):
    """Raised by storage when a transaction id is already committed.

    Services catch it and replay the original result; it never reaches callers.
    """

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(1004, f"Duplicate transaction_id: {transaction_id}", 409)


class IdempotencyConflictError(AppError):
    def __init__(self, transaction_id: str, existing: str, requested: str) -> None:
        super().__init__(
            1005,
            f"transaction_id {transaction_id} already used for {existing}, not {requested}",
            409,
        )


class CurrencyMismatchError(AppError):
    def __init__(self, card_id: str, expected: str, got: str) -> None:
        super().__init__(1006, f"Card {card_id} pool is in {expected}, got {got}", 422)


class WebhookSignatureError(AppError):
    def __init__(self) -> None:
        super().__init__(1007, "Webhook signature missing or invalid", 401)


class InvalidWebhookPayloadError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(1008, f"Invalid webhook payload: {detail}", 422)


# --- 2xxx: Balance ---

class InsufficientPoolBalanceError(AppError):
    def __init__(self, card_id: str, required: int, available: int) -> None:
        super().__init__(
            2001,
            f"Insufficient pool balance on card {card_id}: "
            f"required {required} cents, available {available} cents",
            422,
        )


class InsufficientAvailableBalanceError(AppError):
    def __init__(self, user_id: str, required: int, available: int) -> None:
        super().__init__(
            2002,
            f"Insufficient available balance for member {user_id}: "
            f"required {required} cents, available {available} cents",
            422,
        )


# --- 3xxx: Withdrawal ---

class WithdrawalNotFoundError(AppError):
    def __init__(self, withdrawal_id: str) -> None:
        super().__init__(3001, f"Withdrawal request not found: {withdrawal_id}", 404)


class InvalidStateTransitionError(AppError):
    def __init__(self, withdrawal_id: str, status: str, target: str) -> None:
        super().__init__(
            3002,
            f"Withdrawal {withdrawal_id} in status {status} cannot move to {target}",
            422,
        )


# --- 4xxx: Wallet/Member ---

class UnknownMemberError(AppError):
    def __init__(self, card_id: str, user_id: str) -> None:
        super().__init__(4001, f"User {user_id} has no equity on card {card_id}", 422)


class WalletMismatchError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4002, f"Wallet mismatch: {detail}", 403)


# --- 9xxx: System ---

class StorageFailureError(AppError):
    """Atomic commit failed. Nothing was written; the caller may retry as a whole."""

    def __init__(self, detail: str = "Storage commit failed") -> None:
        super().__init__(9001, detail, 503)


class CardBusyError(AppError):
    def __init__(self, card_id: str, timeout_seconds: float) -> None:
        super().__init__(
            9002,
            f"Card {card_id} is busy: lock not acquired within {timeout_seconds}s, retry later",
            503,
        )


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9003, detail, 500)
