# File: src/carpark/domain/models.py
"""
Domain Models for the Car Park Ledger

This module contains:
1. Enums: Vehicle categories and operator roles, with their persisted numeric codes
2. Value Objects: Slots, users and bill quotes (immutable)
3. Entities: Ledger entries (one parking session each, open or closed)
4. Helpers: Identifier normalization and billable-hour rounding

Occupancy is never stored on a slot. A slot is occupied when an open
ledger entry references it.
"""

from dataclasses import dataclass
from typing import Optional, Any
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
import math

from .exceptions import ValidationError, InvalidCategory, InvalidRole, EntryClosedError


# ============================================================================
# ENUMS FOR DOMAIN TYPES
# ============================================================================

class VehicleType(Enum):
    """
    Enumeration of vehicle categories
    Values are the numeric codes written to the flat files
    """
    TWO_WHEELER = 0
    FOUR_WHEELER = 1
    EV = 2
    VIP = 3

    @property
    def code(self) -> int:
        return self.value

    @classmethod
    def from_code(cls, code: Any) -> 'VehicleType':
        """Decode a persisted category code, rejecting anything outside the closed set"""
        try:
            return cls(int(str(code).strip()))
        except ValueError:
            raise InvalidCategory(f"Unknown vehicle category code: {code!r}")

    def __str__(self) -> str:
        names = {
            VehicleType.TWO_WHEELER: "2-Wheeler",
            VehicleType.FOUR_WHEELER: "4-Wheeler",
            VehicleType.EV: "EV",
            VehicleType.VIP: "VIP",
        }
        return names[self]


class UserRole(Enum):
    """
    Enumeration of operator roles
    Values are the numeric codes written to the users file
    """
    ADMIN = 0
    ATTENDANT = 1
    SECURITY = 2

    @property
    def code(self) -> int:
        return self.value

    @classmethod
    def from_code(cls, code: Any) -> 'UserRole':
        try:
            return cls(int(str(code).strip()))
        except ValueError:
            raise InvalidRole(f"Unknown user role code: {code!r}")

    @property
    def can_record_traffic(self) -> bool:
        """Admins and attendants record vehicle entry and exit"""
        return self in (UserRole.ADMIN, UserRole.ATTENDANT)

    @property
    def can_administer(self) -> bool:
        """Only admins open reports and admin functions"""
        return self is UserRole.ADMIN

    def __str__(self) -> str:
        return self.name.capitalize()


# ============================================================================
# HELPERS
# ============================================================================

def normalize_identifier(value: Optional[str], label: str = "Identifier") -> str:
    """Strip and upper-case an identifier; empty input is a validation error"""
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} cannot be empty")
    return str(value).strip().upper()


def billable_hours(duration: timedelta) -> int:
    """
    Round a parking duration up to whole hours
    Zero or negative durations (same-instant exit, clock skew) bill one hour
    """
    hours = duration.total_seconds() / 3600
    return max(1, math.ceil(hours))


# ============================================================================
# VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class Slot:
    """
    Value Object: A parking space with a fixed vehicle category
    Identifiers are stored upper-case
    """
    slot_id: str
    category: VehicleType

    def __post_init__(self):
        object.__setattr__(self, 'slot_id', normalize_identifier(self.slot_id, "Slot number"))
        if not isinstance(self.category, VehicleType):
            raise InvalidCategory(f"Invalid slot category: {self.category!r}")

    def __str__(self) -> str:
        return f"{self.slot_id} ({self.category})"


@dataclass(frozen=True)
class User:
    """Value Object: An operator account"""
    username: str
    password: str
    full_name: str
    role: UserRole

    def __post_init__(self):
        if not self.username or not self.username.strip():
            raise ValidationError("Username cannot be empty")
        object.__setattr__(self, 'username', self.username.strip())

    def matches(self, username: str, password: str) -> bool:
        """Case-insensitive user name, exact password"""
        return (
            self.username.casefold() == (username or "").strip().casefold()
            and self.password == password
        )

    def __str__(self) -> str:
        return f"{self.full_name} ({self.role})"


@dataclass(frozen=True)
class BillQuote:
    """
    Value Object: Fee proposed for an open entry at a given exit time
    Discarded unless the operator confirms it
    """
    ticket_id: str
    exit_time: datetime
    duration: timedelta
    billed_hours: int
    hourly_rate: Decimal
    fee: Decimal


# ============================================================================
# DOMAIN ENTITIES
# ============================================================================

@dataclass
class LedgerEntry:
    """
    Entity: One parking session

    Created open on vehicle entry, closed exactly once on exit by setting
    exit_time and fee. The slot binding never changes.
    """
    ticket_id: str
    vehicle_id: str
    owner_name: str
    category: VehicleType
    slot_id: str
    entry_time: datetime
    exit_time: Optional[datetime] = None
    fee: Optional[Decimal] = None

    def __post_init__(self):
        self.ticket_id = normalize_identifier(self.ticket_id, "Ticket number")
        self.vehicle_id = normalize_identifier(self.vehicle_id, "Vehicle number")
        self.slot_id = normalize_identifier(self.slot_id, "Slot number")
        self.owner_name = (self.owner_name or "").strip()
        if not isinstance(self.category, VehicleType):
            raise InvalidCategory(f"Invalid vehicle category: {self.category!r}")
        if (self.exit_time is None) != (self.fee is None):
            raise ValidationError(
                f"Entry {self.ticket_id} must have both exit time and fee, or neither"
            )

    @property
    def is_open(self) -> bool:
        return self.exit_time is None

    def matches_vehicle(self, vehicle_id: str) -> bool:
        return self.vehicle_id.casefold() == (vehicle_id or "").strip().casefold()

    def close(self, exit_time: datetime, fee: Decimal) -> None:
        """Record exit time and fee; irreversible"""
        if not self.is_open:
            raise EntryClosedError(
                f"Entry {self.ticket_id} for {self.vehicle_id} was already closed at "
                f"{self.exit_time:%Y-%m-%d %H:%M:%S}"
            )
        if fee < Decimal('0'):
            raise ValidationError("Fee cannot be negative")
        self.exit_time = exit_time
        self.fee = fee
