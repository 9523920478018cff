# Overview: Immutable lookup tables and numeric limits for the inventory rules.

"""
All static tables (barcode formats, location compatibility, receivable
location types, transaction number prefixes, approval limits) live in one
frozen RulesConfig.

create_app() builds one instance from the Flask config and stores it on
app.extensions; services read it through current_rules() or accept an
explicit rules= argument. Outside an application context the defaults
apply, which keeps the pure services (barcodes, stock ledger) usable from
plain unit tests.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional, Pattern

from flask import current_app, has_app_context

from .models.inventory import TransactionType
from .models.locations import LocationType


RULES_EXTENSION_KEY = "devtrack.rules"


@dataclass(frozen=True)
class BarcodeFormat:
    key: str
    name: str
    min_length: int
    max_length: int
    pattern: Optional[Pattern[str]]
    check_digit_required: bool
    description: str

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "name": self.name,
            "min_length": self.min_length,
            "max_length": self.max_length,
            "pattern": self.pattern.pattern if self.pattern is not None else None,
            "check_digit_required": self.check_digit_required,
            "description": self.description,
        }


# Table order matters: AUTO detection returns the first match.
DEFAULT_BARCODE_FORMATS: Mapping[str, BarcodeFormat] = MappingProxyType({
    "CODE_128": BarcodeFormat(
        "CODE_128", "Code 128", 1, 128,
        re.compile(r"^[A-Za-z0-9\-\.\s/]+$"), False,
        "Alphanumeric, general purpose",
    ),
    "QR_CODE": BarcodeFormat(
        "QR_CODE", "QR Code", 1, 2048, None, False,
        "2D matrix, any content",
    ),
    "CODE_39": BarcodeFormat(
        "CODE_39", "Code 39", 1, 43,
        re.compile(r"^[A-Z0-9\-\.\s/]+$"), False,
        "Uppercase alphanumeric",
    ),
    "EAN_13": BarcodeFormat(
        "EAN_13", "EAN-13", 13, 13, re.compile(r"^\d{13}$"), True,
        "European Article Number, 13 digits",
    ),
    "EAN_8": BarcodeFormat(
        "EAN_8", "EAN-8", 8, 8, re.compile(r"^\d{8}$"), True,
        "European Article Number, 8 digits",
    ),
    "UPC_A": BarcodeFormat(
        "UPC_A", "UPC-A", 12, 12, re.compile(r"^\d{12}$"), True,
        "Universal Product Code, 12 digits",
    ),
    "UPC_E": BarcodeFormat(
        "UPC_E", "UPC-E", 6, 8, re.compile(r"^\d{6,8}$"), True,
        "Universal Product Code, compressed",
    ),
})


_LT = LocationType

DEFAULT_LOCATION_CHILDREN: Mapping[LocationType, frozenset] = MappingProxyType({
    _LT.WAREHOUSE: frozenset({_LT.PRODUCTION_FLOOR, _LT.CUSTOMER_SITE}),
    _LT.PRODUCTION_FLOOR: frozenset({_LT.WAREHOUSE, _LT.CUSTOMER_SITE}),
    _LT.CUSTOMER_SITE: frozenset({_LT.WAREHOUSE, _LT.PRODUCTION_FLOOR}),
    _LT.SUPPLIER_LOCATION: frozenset(),
    _LT.TRANSIT: frozenset(),
    _LT.QUARANTINE: frozenset(),
    _LT.OTHER: frozenset({
        _LT.WAREHOUSE, _LT.PRODUCTION_FLOOR, _LT.CUSTOMER_SITE, _LT.SUPPLIER_LOCATION,
    }),
})

DEFAULT_RECEIVABLE_LOCATION_TYPES = frozenset({
    _LT.WAREHOUSE, _LT.PRODUCTION_FLOOR, _LT.CUSTOMER_SITE, _LT.OTHER,
})

DEFAULT_TRANSACTION_PREFIXES: Mapping[TransactionType, str] = MappingProxyType({
    TransactionType.RECEIPT: "REC",
    TransactionType.ISSUE: "ISS",
    TransactionType.TRANSFER: "TRF",
    TransactionType.ADJUSTMENT: "ADJ",
    TransactionType.CYCLE_COUNT: "CC",
    TransactionType.RETURN: "RTN",
})

# Per-role approval ceilings in cents ($1,000 / $10,000 / $100,000)
DEFAULT_APPROVAL_LIMITS_CENTS: Mapping[str, int] = MappingProxyType({
    "CLERK": 100_000,
    "MANAGER": 1_000_000,
    "ADMIN": 10_000_000,
})


@dataclass(frozen=True)
class RulesConfig:
    barcode_formats: Mapping[str, BarcodeFormat] = field(default_factory=lambda: DEFAULT_BARCODE_FORMATS)
    location_children: Mapping[LocationType, frozenset] = field(default_factory=lambda: DEFAULT_LOCATION_CHILDREN)
    receivable_location_types: frozenset = DEFAULT_RECEIVABLE_LOCATION_TYPES
    transaction_prefixes: Mapping[TransactionType, str] = field(default_factory=lambda: DEFAULT_TRANSACTION_PREFIXES)
    fallback_prefix: str = "TXN"
    approval_limits_cents: Mapping[str, int] = field(default_factory=lambda: DEFAULT_APPROVAL_LIMITS_CENTS)

    max_hierarchy_depth: int = 5
    max_hierarchy_hops: int = 10

    max_receipt_quantity: int = 1_000_000
    # Single-request and bulk-path ceilings for positive adjustments
    adjustment_ceiling: int = 10_000
    bulk_adjustment_ceiling: int = 1_000_000
    max_batch_size: int = 100

    reorder_window_days: int = 90
    reorder_safety_factor: float = 1.2
    default_lead_time_days: int = 7

    low_confidence_threshold: int = 50
    min_scan_length: int = 3
    max_scan_length: int = 2048

    @classmethod
    def from_config(cls, config: Mapping) -> "RulesConfig":
        """Build from a Flask config mapping; missing keys keep defaults."""
        overrides = {}
        for key, attr in (
            ("MAX_RECEIPT_QUANTITY", "max_receipt_quantity"),
            ("ADJUSTMENT_CEILING", "adjustment_ceiling"),
            ("BULK_ADJUSTMENT_CEILING", "bulk_adjustment_ceiling"),
            ("MAX_BATCH_SIZE", "max_batch_size"),
            ("MAX_HIERARCHY_DEPTH", "max_hierarchy_depth"),
            ("REORDER_WINDOW_DAYS", "reorder_window_days"),
            ("DEFAULT_LEAD_TIME_DAYS", "default_lead_time_days"),
        ):
            if config.get(key) is not None:
                overrides[attr] = int(config[key])
        return replace(cls(), **overrides)

    def prefix_for(self, tx_type: TransactionType) -> str:
        return self.transaction_prefixes.get(tx_type, self.fallback_prefix)


DEFAULT_RULES = RulesConfig()


def current_rules() -> RulesConfig:
    """Rules bound to the running app, or the defaults outside an app context."""
    if has_app_context():
        return current_app.extensions.get(RULES_EXTENSION_KEY, DEFAULT_RULES)
    return DEFAULT_RULES
