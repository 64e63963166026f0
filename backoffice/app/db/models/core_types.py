import enum

from sqlalchemy import BigInteger, Integer

# SQLite n'auto-incrémente que "INTEGER PRIMARY KEY" (tests)
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class SupplierType(str, enum.Enum):
    standard = "standard"
    internal_transfer = "internal_transfer"

class OrderType(str, enum.Enum):
    supplier = "supplier"
    transfer = "transfer"

class OrderStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    confirmed = "confirmed"
    shipped = "shipped"
    partially_received = "partially_received"
    received = "received"
    incident = "incident"
    cancelled = "cancelled"

class LineStatus(str, enum.Enum):
    pending = "pending"
    partial = "partial"
    received = "received"
    incident = "incident"
    cancelled = "cancelled"

class MovementType(str, enum.Enum):
    supplier_receipt = "supplier_receipt"
    transfer_out = "transfer_out"
    transfer_in = "transfer_in"
    adjustment = "adjustment"
    sale = "sale"
    return_ = "return"
    damage = "damage"
    theft = "theft"
    expired = "expired"

class LedgerDurability(str, enum.Enum):
    transactional = "transactional"
    best_effort = "best_effort"

class ReceiptPolicy(str, enum.Enum):
    any_receipt = "any_receipt"
    all_lines_received = "all_lines_received"
