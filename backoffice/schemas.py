"""
Typed request payloads.

Incoming JSON is parsed into these dataclasses at the HTTP boundary so the
services never see loosely shaped dicts.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

from backoffice.exceptions import ValidationError
from backoffice.models import UnitStatus, TaxRegime
from backoffice.services.unit_filters import UnitFilter, parse_date, parse_status
from backoffice.utils.money import parse_decimal


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _require_object(value: Any, field_name: str) -> dict:
    if not isinstance(value, dict):
        raise ValidationError(f'{field_name} must be an object')
    return value


def _require_list(value: Any, field_name: str) -> list:
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f'{field_name} must be a list')
    return value


def _to_int(value: Any, field_name: str) -> int | None:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{field_name} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field_name} must be an integer')


def _to_decimal(value: Any, field_name: str, default: Decimal | None = None) -> Decimal | None:
    if value is None or value == '':
        return default
    try:
        return parse_decimal(value, field_name)
    except ValueError as e:
        raise ValidationError(str(e))


@dataclass(frozen=True)
class TenantContext:
    """Who is calling: the authenticated tenant and a display name for audit rows."""
    tenant_id: int
    actor_name: str
    actor_user_id: Optional[str] = None


@dataclass(frozen=True)
class OverrideCredentials:
    username: str
    password: str

    @classmethod
    def from_dict(cls, data: Any) -> "OverrideCredentials | None":
        if not data:
            return None
        data = _require_object(data, 'override')
        return cls(username=str(data.get('username') or ''), password=str(data.get('password') or ''))


@dataclass(frozen=True)
class CustomerPayload:
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    customer_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "CustomerPayload | None":
        if data is None:
            return None
        data = _require_object(data, 'customer')
        return cls(
            name=_to_text(data.get('name')) or '',
            phone=_to_text(data.get('phone')),
            email=_to_text(data.get('email')),
            address=_to_text(data.get('address')),
            customer_id=_to_int(data.get('customer_id'), 'customer_id'),
        )


@dataclass(frozen=True)
class TransitionRequest:
    target: UnitStatus
    customer: Optional[CustomerPayload] = None
    credentials: Optional[OverrideCredentials] = None

    @classmethod
    def from_dict(cls, data: dict) -> "TransitionRequest":
        target = parse_status(data.get('status'))
        if target is None:
            raise ValidationError('status is required')
        return cls(
            target=target,
            customer=CustomerPayload.from_dict(data.get('customer')),
            credentials=OverrideCredentials.from_dict(data.get('override')),
        )


@dataclass(frozen=True)
class UnitCreate:
    unit_code: str
    manufacture_date: date
    expiry_date: Optional[date] = None
    price: Optional[Decimal] = None
    status: UnitStatus = UnitStatus.IN_STOCK

    @classmethod
    def from_dict(cls, data: dict) -> "UnitCreate":
        code = _to_text(data.get('unit_code'))
        if not code:
            raise ValidationError('unit_code is required')
        manufacture_date = parse_date(data.get('manufacture_date'), 'manufacture_date')
        if manufacture_date is None:
            raise ValidationError('manufacture_date is required')
        return cls(
            unit_code=code,
            manufacture_date=manufacture_date,
            expiry_date=parse_date(data.get('expiry_date'), 'expiry_date'),
            price=_to_decimal(data.get('price'), 'price'),
            status=parse_status(data.get('status')) or UnitStatus.IN_STOCK,
        )


@dataclass(frozen=True)
class UnitBatchCreate:
    """Batch add: codes are ``{base_code}-001`` .. ``{base_code}-{quantity:03d}``."""
    base_code: str
    quantity: int
    manufacture_date: date
    expiry_date: Optional[date] = None
    price: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data: dict) -> "UnitBatchCreate":
        base_code = _to_text(data.get('base_code'))
        if not base_code:
            raise ValidationError('base_code is required')
        quantity = _to_int(data.get('quantity'), 'quantity')
        if not quantity or quantity < 1:
            raise ValidationError('quantity must be at least 1')
        manufacture_date = parse_date(data.get('manufacture_date'), 'manufacture_date')
        if manufacture_date is None:
            raise ValidationError('manufacture_date is required')
        return cls(
            base_code=base_code,
            quantity=quantity,
            manufacture_date=manufacture_date,
            expiry_date=parse_date(data.get('expiry_date'), 'expiry_date'),
            price=_to_decimal(data.get('price'), 'price'),
        )


@dataclass(frozen=True)
class UnitEdit:
    """Single unit edit. None leaves the field untouched."""
    manufacture_date: Optional[date] = None
    expiry_date: Optional[date] = None
    clear_expiry_date: bool = False
    price: Optional[Decimal] = None
    credentials: Optional[OverrideCredentials] = None

    @classmethod
    def from_dict(cls, data: dict) -> "UnitEdit":
        clear_expiry = 'expiry_date' in data and data['expiry_date'] is None
        return cls(
            manufacture_date=parse_date(data.get('manufacture_date'), 'manufacture_date'),
            expiry_date=parse_date(data.get('expiry_date'), 'expiry_date'),
            clear_expiry_date=clear_expiry,
            price=_to_decimal(data.get('price'), 'price'),
            credentials=OverrideCredentials.from_dict(data.get('override')),
        )

    def values(self) -> dict:
        values = {}
        if self.manufacture_date is not None:
            values['manufacture_date'] = self.manufacture_date
        if self.expiry_date is not None:
            values['expiry_date'] = self.expiry_date
        elif self.clear_expiry_date:
            values['expiry_date'] = None
        if self.price is not None:
            values['price'] = self.price
        return values


@dataclass(frozen=True)
class SelectedScope:
    ids: tuple


@dataclass(frozen=True)
class FilteredScope:
    unit_filter: UnitFilter


BulkScope = Union[SelectedScope, FilteredScope]


def parse_scope(data: Any) -> BulkScope:
    """
    Parse ``{"kind": "SELECTED", "ids": [...]}`` or
    ``{"kind": "FILTERED", "filter": {...}}``.
    """
    if not isinstance(data, dict):
        raise ValidationError('scope is required')
    kind = str(data.get('kind') or '').upper()
    if kind == 'SELECTED':
        raw_ids = data.get('ids') or []
        if not isinstance(raw_ids, (list, tuple)):
            raise ValidationError('scope.ids must be a list')
        ids = tuple(dict.fromkeys(i for i in (_to_int(r, 'scope.ids') for r in raw_ids) if i is not None))
        if not ids:
            raise ValidationError('No units selected')
        return SelectedScope(ids=ids)
    if kind == 'FILTERED':
        filter_data = _require_object(data.get('filter') or {}, 'scope.filter')
        return FilteredScope(unit_filter=UnitFilter.from_dict(filter_data))
    raise ValidationError("scope.kind must be 'SELECTED' or 'FILTERED'")


@dataclass(frozen=True)
class BulkPatch:
    status: Optional[UnitStatus] = None
    manufacture_date: Optional[date] = None
    expiry_date: Optional[date] = None

    @classmethod
    def from_dict(cls, data: dict) -> "BulkPatch":
        data = _require_object(data or {}, 'patch')
        status = data.get('status')
        return cls(
            status=None if status in (None, '', 'NO_CHANGE') else parse_status(status),
            manufacture_date=parse_date(data.get('manufacture_date'), 'manufacture_date'),
            expiry_date=parse_date(data.get('expiry_date'), 'expiry_date'),
        )

    def is_empty(self) -> bool:
        return self.status is None and self.manufacture_date is None and self.expiry_date is None

    def to_dict(self) -> dict:
        return {
            'status': self.status.value if self.status else None,
            'manufacture_date': self.manufacture_date.isoformat() if self.manufacture_date else None,
            'expiry_date': self.expiry_date.isoformat() if self.expiry_date else None,
        }


@dataclass(frozen=True)
class BulkEditRequest:
    scope: BulkScope
    patch: BulkPatch
    credentials: Optional[OverrideCredentials] = None

    @classmethod
    def from_dict(cls, data: dict) -> "BulkEditRequest":
        return cls(
            scope=parse_scope(data.get('scope')),
            patch=BulkPatch.from_dict(data.get('patch')),
            credentials=OverrideCredentials.from_dict(data.get('override')),
        )


class BulkDeleteMode(enum.Enum):
    """Required choice when the scope contains verified units."""
    SKIP_VERIFIED = "SKIP_VERIFIED"
    DELETE_ALL = "DELETE_ALL"


@dataclass(frozen=True)
class BulkDeleteRequest:
    scope: BulkScope
    confirmation: str
    mode: Optional[BulkDeleteMode] = None
    credentials: Optional[OverrideCredentials] = None

    @classmethod
    def from_dict(cls, data: dict) -> "BulkDeleteRequest":
        mode_raw = data.get('mode')
        mode = None
        if mode_raw:
            try:
                mode = BulkDeleteMode(str(mode_raw).strip().upper())
            except ValueError:
                raise ValidationError("mode must be 'SKIP_VERIFIED' or 'DELETE_ALL'")
        return cls(
            scope=parse_scope(data.get('scope')),
            confirmation=str(data.get('confirmation') or ''),
            mode=mode,
            credentials=OverrideCredentials.from_dict(data.get('override')),
        )


@dataclass(frozen=True)
class InvoiceLineInput:
    """A manually authored invoice row (or one derived from grouped units)."""
    description: str
    quantity: int
    rate: Decimal
    discount: Decimal = Decimal('0')
    tax_percent: Decimal = Decimal('0')
    hsn_code: Optional[str] = None
    product_id: Optional[int] = None
    unit_ids: tuple = ()

    @classmethod
    def from_dict(cls, data: dict) -> "InvoiceLineInput":
        data = _require_object(data, 'Each line')
        description = _to_text(data.get('description'))
        if not description:
            raise ValidationError('Each line needs a description')
        quantity = _to_int(data.get('quantity'), 'quantity')
        if quantity is None or quantity < 1:
            raise ValidationError(f'Quantity must be at least 1 for "{description}"')
        rate = _to_decimal(data.get('rate'), 'rate')
        if rate is None:
            raise ValidationError(f'Rate is required for "{description}"')
        return cls(
            description=description,
            quantity=quantity,
            rate=rate,
            discount=_to_decimal(data.get('discount'), 'discount', Decimal('0')),
            tax_percent=_to_decimal(data.get('tax_percent'), 'tax_percent', Decimal('0')),
            hsn_code=_to_text(data.get('hsn_code') or data.get('hsn')),
            product_id=_to_int(data.get('product_id'), 'product_id'),
        )


@dataclass(frozen=True)
class InvoiceTax:
    regime: TaxRegime = TaxRegime.FLAT
    cgst_percent: Decimal = Decimal('0')
    sgst_percent: Decimal = Decimal('0')
    igst_percent: Decimal = Decimal('0')

    @classmethod
    def from_dict(cls, data: dict, defaults: dict | None = None) -> "InvoiceTax":
        data = _require_object(data or {}, 'tax')
        defaults = defaults or {}
        regime_raw = data.get('regime') or data.get('tax_type') or TaxRegime.FLAT.value
        try:
            regime = TaxRegime(str(regime_raw).strip().upper())
        except ValueError:
            allowed = ', '.join(r.value for r in TaxRegime)
            raise ValidationError(f"Invalid tax regime '{regime_raw}'. Must be one of: {allowed}")

        def pct(key):
            return _to_decimal(data.get(key), key, Decimal(str(defaults.get(key, '0'))))

        return cls(
            regime=regime,
            cgst_percent=pct('cgst_percent') if regime == TaxRegime.CGST_SGST else Decimal('0'),
            sgst_percent=pct('sgst_percent') if regime == TaxRegime.CGST_SGST else Decimal('0'),
            igst_percent=pct('igst_percent') if regime == TaxRegime.IGST else Decimal('0'),
        )


@dataclass(frozen=True)
class ProductOverride:
    """Rate/discount applied uniformly to every unit of one product on an invoice."""
    rate: Optional[Decimal] = None
    discount: Optional[Decimal] = None


@dataclass(frozen=True)
class InvoiceRequest:
    customer_name: str
    invoice_date: date
    tax: InvoiceTax
    lines: tuple = ()
    unit_ids: tuple = ()
    overrides: dict = field(default_factory=dict)
    due_date: Optional[date] = None
    customer_id: Optional[int] = None
    billing_address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    gst_number: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_custom(self) -> bool:
        return not self.unit_ids

    @classmethod
    def from_dict(cls, data: dict, tax_defaults: dict | None = None) -> "InvoiceRequest":
        raw_ids = _require_list(data.get('unit_ids') or [], 'unit_ids')
        unit_ids = tuple(_to_int(i, 'unit_ids') for i in raw_ids)
        lines = ()
        if not unit_ids:
            raw_lines = _require_list(data.get('lines') or [], 'lines')
            lines = tuple(InvoiceLineInput.from_dict(line) for line in raw_lines)

        overrides = {}
        for product_id, raw in _require_object(data.get('overrides') or {}, 'overrides').items():
            raw = _require_object(raw, f'overrides.{product_id}')
            overrides[_to_int(product_id, 'overrides')] = ProductOverride(
                rate=_to_decimal(raw.get('rate'), 'rate'),
                discount=_to_decimal(raw.get('discount'), 'discount'),
            )

        return cls(
            customer_name=_to_text(data.get('customer_name')) or '',
            invoice_date=parse_date(data.get('invoice_date'), 'invoice_date') or date.today(),
            due_date=parse_date(data.get('due_date'), 'due_date'),
            tax=InvoiceTax.from_dict(data.get('tax'), tax_defaults),
            lines=lines,
            unit_ids=unit_ids,
            overrides=overrides,
            customer_id=_to_int(data.get('customer_id'), 'customer_id'),
            billing_address=_to_text(data.get('billing_address')),
            phone=_to_text(data.get('phone')),
            email=_to_text(data.get('email')),
            gst_number=_to_text(data.get('gst_number')),
            notes=_to_text(data.get('notes')),
        )
