# Overview: Domain error types raised by the inventory services.

"""
Rule violations are domain errors, not technical errors. Each carries a
machine-readable kind so routes and the CLI can pick 400/404/409 and
callers can automate retry on concurrency conflicts.

Storage failures (OperationalError, IntegrityError, ...) are NOT wrapped
here; they propagate to the caller unchanged.
"""

from __future__ import annotations

import enum


class ViolationKind(str, enum.Enum):
    # Lookups
    NOT_FOUND = "NotFound"
    PARENT_NOT_FOUND = "ParentNotFound"

    # Stock
    INVALID_QUANTITY = "InvalidQuantity"
    QUANTITY_EXCEEDS_LIMIT = "QuantityExceedsLimit"
    INSUFFICIENT_STOCK = "InsufficientStock"
    SAME_LOCATION = "SameLocation"
    LOCATION_CANNOT_RECEIVE = "LocationCannotReceive"
    ITEM_NOT_AT_LOCATION = "ItemNotAtLocation"
    REASON_REQUIRED = "ReasonRequired"
    WOULD_GO_NEGATIVE = "WouldGoNegative"
    UNREASONABLE_ADJUSTMENT = "UnreasonableAdjustment"
    INVALID_STOCK_LEVEL = "InvalidStockLevel"
    EXCEEDS_MAXIMUM_STOCK = "ExceedsMaximumStock"
    INVALID_STOCK_BOUNDS = "InvalidStockBounds"
    INSUFFICIENT_HISTORY = "InsufficientHistory"

    # Batches and approval
    BATCH_TOO_LARGE = "BatchTooLarge"
    DUPLICATE_IN_BATCH = "DuplicateInBatch"
    EXCEEDS_APPROVAL_LIMIT = "ExceedsApprovalLimit"
    UNKNOWN_ROLE = "UnknownRole"

    # Lifecycle
    INVALID_STATE_TRANSITION = "InvalidStateTransition"
    TRANSACTION_LOCKED = "TransactionLocked"
    HAS_ACTIVE_TRANSACTIONS = "HasActiveTransactions"

    # Hierarchy
    SELF_PARENT = "SelfParent"
    CIRCULAR_REFERENCE = "CircularReference"
    DEPTH_EXCEEDED = "DepthExceeded"
    INCOMPATIBLE_TYPE = "IncompatibleType"
    HAS_CHILDREN = "HasChildren"
    HAS_ITEMS = "HasItems"
    NO_CAPACITY_LIMIT = "NoCapacityLimit"

    # Identity
    DUPLICATE_CODE = "DuplicateCode"
    DUPLICATE_PART_NUMBER = "DuplicatePartNumber"
    DUPLICATE_BARCODE = "DuplicateBarcode"

    # Barcodes
    INVALID_BARCODE_FORMAT = "InvalidBarcodeFormat"
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    FORMAT_NOT_RECOGNIZED = "FormatNotRecognized"
    INVALID_PART_NUMBER = "InvalidPartNumber"
    LOW_CONFIDENCE = "LowConfidence"
    TOO_SHORT = "TooShort"
    TOO_LONG = "TooLong"

    # Concurrency
    CONCURRENCY_CONFLICT = "ConcurrencyConflict"


class RuleViolation(ValueError):
    """
    A proposed operation violates an inventory business rule.

    Not fatal: callers surface it as a user-facing rejection.
    """

    status_code = 400

    def __init__(self, kind: ViolationKind, message: str):
        super().__init__(message)
        self.kind = ViolationKind(kind)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind.value}

    def prefixed(self, prefix: str) -> RuleViolation:
        """Same class, kind and status code, with prefix put in front of the message."""
        wrapped = RuleViolation.__new__(type(self))
        RuleViolation.__init__(wrapped, self.kind, f"{prefix}: {self.message}")
        return wrapped


class NotFoundError(RuleViolation):
    """Referenced entity does not exist (404 at the HTTP boundary)."""

    status_code = 404

    def __init__(self, message: str, kind: ViolationKind = ViolationKind.NOT_FOUND):
        super().__init__(kind, message)


class ConcurrencyConflict(RuleViolation):
    """
    The item changed since the caller read it.

    Always recoverable: re-fetch and retry.
    """

    status_code = 409

    def __init__(self, message: str = "Item was modified by another user; reload and retry"):
        super().__init__(ViolationKind.CONCURRENCY_CONFLICT, message)


class HierarchyInvariantError(RuntimeError):
    """Parent-chain walk exceeded its hop cap (corrupt hierarchy)."""
