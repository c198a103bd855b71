"""
Structured filter for inventory unit queries.

The filter is a plain value object; ``unit_store.apply_unit_filter`` is the
single place that turns it into SQL.
"""
from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from backoffice.exceptions import ValidationError
from backoffice.models import UnitStatus


class ExpiryFilter(enum.Enum):
    """Quick filter on expiry relative to today."""
    ALL = "ALL"
    EXPIRED = "EXPIRED"
    NOT_EXPIRED = "NOT_EXPIRED"


def parse_date(value: Any, field: str) -> Optional[date]:
    """Parse YYYY-MM-DD (or a date) into a date; blank means None."""
    if value is None or value == '':
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format')


def parse_status(value: Any, field: str = 'status') -> Optional[UnitStatus]:
    if value is None or value == '' or value == 'ALL':
        return None
    if isinstance(value, UnitStatus):
        return value
    try:
        return UnitStatus(str(value).strip().upper())
    except ValueError:
        allowed = ', '.join(s.value for s in UnitStatus)
        raise ValidationError(f"Invalid {field} '{value}'. Must be one of: {allowed}")


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class UnitFilter:
    status: Optional[UnitStatus] = None
    search: str = ''
    manufacture_from: Optional[date] = None
    manufacture_to: Optional[date] = None
    expiry_from: Optional[date] = None
    expiry_to: Optional[date] = None
    include_no_expiry: bool = True
    expiry: ExpiryFilter = ExpiryFilter.ALL

    @classmethod
    def from_dict(cls, data: dict) -> "UnitFilter":
        data = data or {}
        expiry_raw = data.get('expiry') or data.get('expired') or 'ALL'
        try:
            expiry = ExpiryFilter(str(expiry_raw).strip().upper())
        except ValueError:
            raise ValidationError(f"Invalid expiry filter '{expiry_raw}'")

        return cls(
            status=parse_status(data.get('status')),
            search=str(data.get('search') or '').strip(),
            manufacture_from=parse_date(data.get('manufacture_from'), 'manufacture_from'),
            manufacture_to=parse_date(data.get('manufacture_to'), 'manufacture_to'),
            expiry_from=parse_date(data.get('expiry_from'), 'expiry_from'),
            expiry_to=parse_date(data.get('expiry_to'), 'expiry_to'),
            include_no_expiry=_parse_bool(data.get('include_no_expiry'), True),
            expiry=expiry,
        )

    def to_dict(self) -> dict:
        return {
            'status': self.status.value if self.status else None,
            'search': self.search,
            'manufacture_from': self.manufacture_from.isoformat() if self.manufacture_from else None,
            'manufacture_to': self.manufacture_to.isoformat() if self.manufacture_to else None,
            'expiry_from': self.expiry_from.isoformat() if self.expiry_from else None,
            'expiry_to': self.expiry_to.isoformat() if self.expiry_to else None,
            'include_no_expiry': self.include_no_expiry,
            'expiry': self.expiry.value,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    def is_empty(self) -> bool:
        return self == UnitFilter()
