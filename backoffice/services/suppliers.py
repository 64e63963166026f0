from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.core.errors import NotFoundError, ValidationError
from backoffice.app.db.models.core_types import SupplierType
from backoffice.app.db.models.models_v1 import Supplier, utcnow

logger = logging.getLogger(__name__)

TRANSFER_SUPPLIER_NAME = "Internal Transfer"
TRANSFER_SUPPLIER_LEGAL_NAME = "Internal Stock Transfer System"
TRANSFER_SUPPLIER_TAX_ID = "TRANSFER-SYSTEM"

UPDATABLE_FIELDS = (
    "name",
    "legal_name",
    "email",
    "phone",
    "currency_code",
    "notes",
    "meta",
)


@dataclass
class SupplierInput:
    name: str
    legal_name: str
    tax_id: str
    code: str | None = None
    email: str | None = None
    phone: str | None = None
    currency_code: str = "EUR"
    notes: str | None = None
    supplier_type: SupplierType = SupplierType.standard
    meta: dict[str, Any] | None = field(default=None)


class SupplierRegistry:
    """Fournisseurs : création, lecture, désactivation (jamais de suppression)."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, data: SupplierInput) -> Supplier:
        if self._find_by_tax_id(data.tax_id):
            raise ValidationError(f"Supplier with tax_id {data.tax_id} already exists", field="tax_id")
        if data.code and self.find_by_code(data.code):
            raise ValidationError(f"Supplier with code {data.code} already exists", field="code")

        s = Supplier(
            name=data.name,
            legal_name=data.legal_name,
            tax_id=data.tax_id,
            code=data.code,
            email=data.email,
            phone=data.phone,
            currency_code=data.currency_code,
            notes=data.notes,
            supplier_type=data.supplier_type,
            is_active=True,
            meta=data.meta,
        )
        self.db.add(s)
        self.db.flush()
        logger.info("Supplier created id=%s name=%s type=%s", s.id, s.name, s.supplier_type.value)
        return s

    def get(self, supplier_id: int) -> Supplier:
        s = self.db.get(Supplier, supplier_id)
        if not s:
            raise NotFoundError("Supplier", supplier_id)
        return s

    def get_active(self, supplier_id: int) -> Supplier:
        s = self.get(supplier_id)
        if not s.is_active:
            raise ValidationError(f"Supplier {supplier_id} is deactivated", field="supplier_id")
        return s

    def list(
        self,
        *,
        active: bool | None = None,
        supplier_type: SupplierType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Supplier]:
        stmt = select(Supplier).order_by(Supplier.name, Supplier.id)
        if active is not None:
            stmt = stmt.where(Supplier.is_active == active)
        if supplier_type is not None:
            stmt = stmt.where(Supplier.supplier_type == supplier_type)
        return list(self.db.execute(stmt.offset(offset).limit(limit)).scalars().all())

    def update(self, supplier_id: int, changes: dict[str, Any]) -> Supplier:
        s = self.get(supplier_id)
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields not updatable: {', '.join(sorted(unknown))}")
        for key, value in changes.items():
            setattr(s, key, value)
        self.db.flush()
        return s

    def deactivate(self, supplier_id: int) -> Supplier:
        s = self.get(supplier_id)
        s.is_active = False
        self.db.flush()
        logger.info("Supplier deactivated id=%s", supplier_id)
        return s

    def find_by_code(self, code: str) -> Supplier | None:
        return self.db.execute(select(Supplier).where(Supplier.code == code)).scalar_one_or_none()

    def _find_by_tax_id(self, tax_id: str) -> Supplier | None:
        return self.db.execute(select(Supplier).where(Supplier.tax_id == tax_id)).scalar_one_or_none()

    def ensure_transfer_supplier(self, code: str = "TRANSFER") -> tuple[Supplier, bool]:
        """
        Get-or-create du fournisseur virtuel des transferts internes.
        Retourne (fournisseur, activé_par_cet_appel) : True si créé ou réactivé
        (un rollback précédent le laisse désactivé). Rejouable sans effet.
        """
        existing = self.find_by_code(code)
        if existing:
            if not existing.is_active:
                existing.is_active = True
                self.db.flush()
                logger.info("Transfer supplier %s reactivated", existing.id)
                return existing, True
            return existing, False

        s = self.create(
            SupplierInput(
                name=TRANSFER_SUPPLIER_NAME,
                legal_name=TRANSFER_SUPPLIER_LEGAL_NAME,
                tax_id=f"{TRANSFER_SUPPLIER_TAX_ID}-{code}",
                code=code,
                supplier_type=SupplierType.internal_transfer,
                notes="Virtual supplier for internal stock transfers",
                meta={"virtual": True, "system_created": True, "created_at": utcnow().isoformat()},
            )
        )
        return s, True
