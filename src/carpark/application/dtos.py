# File: src/carpark/application/dtos.py
"""
Data Transfer Objects (DTOs) for the Car Park Ledger

DTOs carry results from the application service to the console:
1. Input DTOs - Validated operator input (vehicle entry)
2. Result DTOs - Tickets, bill quotes, receipts and admin results, each
   with a success flag and a classified error kind instead of an exception
3. Report DTOs - Availability, parked vehicles, daily income

DTO Principles:
- No business logic, only data
- Immutable after creation
- Built from domain objects with from_* constructors
"""

from typing import List, Optional, Type
from datetime import datetime, date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..domain.models import LedgerEntry, BillQuote, Slot, VehicleType
from ..domain.exceptions import (
    CarParkError, ValidationError, DuplicateVehicle, NoFreeSlot,
    VehicleNotFound, StorageError, PermissionDenied, AuthenticationError
)


# ============================================================================
# BASE DTO CLASSES
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO with common functionality"""

    model_config = ConfigDict(
        frozen=True,
        from_attributes=True,
        arbitrary_types_allowed=True,
    )


class ErrorKind(str, Enum):
    """Classification of failed operations"""
    VALIDATION = "validation"
    DUPLICATE_VEHICLE = "duplicate_vehicle"
    NO_FREE_SLOT = "no_free_slot"
    VEHICLE_NOT_FOUND = "vehicle_not_found"
    PERMISSION_DENIED = "permission_denied"
    AUTHENTICATION = "authentication"
    STORAGE = "storage"

    @classmethod
    def classify(cls, error: CarParkError) -> 'ErrorKind':
        mapping: List[tuple] = [
            (DuplicateVehicle, cls.DUPLICATE_VEHICLE),
            (NoFreeSlot, cls.NO_FREE_SLOT),
            (VehicleNotFound, cls.VEHICLE_NOT_FOUND),
            (PermissionDenied, cls.PERMISSION_DENIED),
            (AuthenticationError, cls.AUTHENTICATION),
            (StorageError, cls.STORAGE),
            (ValidationError, cls.VALIDATION),
        ]
        for error_type, kind in mapping:
            if isinstance(error, error_type):
                return kind
        return cls.VALIDATION


class OperationResultDTO(BaseDTO):
    """Common outcome fields"""
    success: bool
    message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    # Set when the change was applied in memory but could not be saved
    storage_warning: Optional[str] = None

    @property
    def persisted(self) -> bool:
        return self.success and self.storage_warning is None

    @classmethod
    def failure(cls: Type['OperationResultDTO'], error: CarParkError, **kwargs) -> 'OperationResultDTO':
        return cls(success=False, message=str(error), error_kind=ErrorKind.classify(error), **kwargs)


# ============================================================================
# INPUT DTOs
# ============================================================================

class EntryRequestDTO(BaseDTO):
    """Operator input for a vehicle entry"""
    vehicle_id: str = Field(..., description="Vehicle registration number")
    owner_name: str = Field(default="", max_length=200)
    category: VehicleType

    @field_validator('vehicle_id')
    @classmethod
    def normalize_vehicle_id(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("Vehicle Number cannot be empty.")
        return value

    @field_validator('owner_name')
    @classmethod
    def strip_owner_name(cls, value: str) -> str:
        return value.strip()


# ============================================================================
# RESULT DTOs
# ============================================================================

class TicketDTO(OperationResultDTO):
    """Result of a vehicle entry"""
    ticket_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    owner_name: Optional[str] = None
    category: Optional[VehicleType] = None
    slot_id: Optional[str] = None
    entry_time: Optional[datetime] = None

    @classmethod
    def from_entry(cls, entry: LedgerEntry, storage_warning: Optional[str] = None) -> 'TicketDTO':
        return cls(
            success=True,
            message="Vehicle parked successfully",
            storage_warning=storage_warning,
            ticket_id=entry.ticket_id,
            vehicle_id=entry.vehicle_id,
            owner_name=entry.owner_name,
            category=entry.category,
            slot_id=entry.slot_id,
            entry_time=entry.entry_time,
        )


class BillQuoteDTO(BaseDTO):
    """Bill shown to the operator before confirming an exit"""
    ticket_id: str
    vehicle_id: str
    owner_name: str
    category: VehicleType
    slot_id: str
    entry_time: datetime
    exit_time: datetime
    duration_seconds: float
    billed_hours: int
    hourly_rate: Decimal
    fee: Decimal

    @property
    def duration_hours_minutes(self) -> tuple:
        """Whole (hours, minutes) of the raw duration, clamped at zero"""
        total_minutes = max(0, int(self.duration_seconds // 60))
        return divmod(total_minutes, 60)

    @classmethod
    def from_quote(cls, entry: LedgerEntry, quote: BillQuote) -> 'BillQuoteDTO':
        return cls(
            ticket_id=entry.ticket_id,
            vehicle_id=entry.vehicle_id,
            owner_name=entry.owner_name,
            category=entry.category,
            slot_id=entry.slot_id,
            entry_time=entry.entry_time,
            exit_time=quote.exit_time,
            duration_seconds=quote.duration.total_seconds(),
            billed_hours=quote.billed_hours,
            hourly_rate=quote.hourly_rate,
            fee=quote.fee,
        )


class ReceiptDTO(OperationResultDTO):
    """Result of a vehicle exit; cancelled when the operator rejected the bill"""
    cancelled: bool = False
    quote: Optional[BillQuoteDTO] = None


class SlotResultDTO(OperationResultDTO):
    """Result of an admin slot change"""
    slot_id: Optional[str] = None
    category: Optional[VehicleType] = None

    @classmethod
    def from_slot(cls, slot: Slot, message: str, storage_warning: Optional[str] = None) -> 'SlotResultDTO':
        return cls(
            success=True,
            message=message,
            storage_warning=storage_warning,
            slot_id=slot.slot_id,
            category=slot.category,
        )


# ============================================================================
# REPORT DTOs
# ============================================================================

class AvailabilityDTO(BaseDTO):
    """Free/total slot counts for one category"""
    category: VehicleType
    free: int = Field(..., ge=0)
    total: int = Field(..., ge=0)


class ParkedVehicleDTO(BaseDTO):
    """One row of the currently-parked report"""
    slot_id: str
    vehicle_id: str
    owner_name: str
    category: VehicleType
    ticket_id: str
    entry_time: datetime

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> 'ParkedVehicleDTO':
        return cls(
            slot_id=entry.slot_id,
            vehicle_id=entry.vehicle_id,
            owner_name=entry.owner_name,
            category=entry.category,
            ticket_id=entry.ticket_id,
            entry_time=entry.entry_time,
        )


class IncomeLineDTO(BaseDTO):
    """One closed entry in the daily income report"""
    vehicle_id: str
    ticket_id: str
    exit_time: datetime
    fee: Decimal


class IncomeReportDTO(BaseDTO):
    """Closed entries and income for one calendar day"""
    day: date
    vehicles_exited: int
    total_income: Decimal
    lines: List[IncomeLineDTO] = Field(default_factory=list)
