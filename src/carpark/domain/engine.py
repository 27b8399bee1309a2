# File: src/carpark/domain/engine.py
"""
Allocation & Billing Engine

Domain service that proposes ledger changes without applying them:
- allocate_slot builds a new open entry bound to a free slot
- compute_bill quotes the fee for an open entry at a given instant
- close_entry applies a confirmed quote to an entry

The engine reads slots and open entries handed to it by the caller. Committing
the result to the record store is the orchestrator's job.
"""

from typing import Iterable, Optional, Sequence, Protocol, Mapping
from datetime import datetime
from decimal import Decimal
import logging

from .models import LedgerEntry, Slot, VehicleType, BillQuote, normalize_identifier
from .strategies import (
    SlotAllocationStrategy, RegistrationOrderStrategy,
    PricingStrategy, HourlyPricingStrategy
)
from .exceptions import (
    ValidationError, InvalidCategory, DuplicateVehicle, NoFreeSlot, EntryClosedError
)


# ============================================================================
# COLLABORATOR INTERFACES
# ============================================================================

class Clock(Protocol):
    """Source of the current time"""

    def now(self) -> datetime:
        ...


class TicketIdGenerator(Protocol):
    """Source of unique ticket identifiers"""

    def new_ticket_id(self) -> str:
        ...


# ============================================================================
# ENGINE
# ============================================================================

class AllocationEngine:
    """
    Matches vehicles to free slots and computes exit fees

    Args:
        clock: Supplies entry timestamps
        id_generator: Supplies ticket identifiers
        allocation_strategy: Picks among free slots (registration order by default)
    """

    def __init__(
        self,
        clock: Clock,
        id_generator: TicketIdGenerator,
        allocation_strategy: Optional[SlotAllocationStrategy] = None
    ):
        self.clock = clock
        self.id_generator = id_generator
        self.allocation_strategy = allocation_strategy or RegistrationOrderStrategy()
        self.logger = logging.getLogger(self.__class__.__name__)

    def allocate_slot(
        self,
        category: VehicleType,
        vehicle_id: str,
        owner_name: str,
        open_entries: Iterable[LedgerEntry],
        all_slots: Sequence[Slot]
    ) -> LedgerEntry:
        """
        Propose a new open ledger entry for the vehicle

        Raises:
            ValidationError: empty vehicle id
            InvalidCategory: category is not a VehicleType
            DuplicateVehicle: the vehicle already has an open entry
            NoFreeSlot: every slot of the category is referenced by an open entry
        """
        vehicle_id = normalize_identifier(vehicle_id, "Vehicle number")
        if not isinstance(category, VehicleType):
            raise InvalidCategory(f"Invalid vehicle category: {category!r}")

        occupied = set()
        for entry in open_entries:
            if not entry.is_open:
                continue
            if entry.matches_vehicle(vehicle_id):
                raise DuplicateVehicle(vehicle_id)
            occupied.add(entry.slot_id)

        slot = self.allocation_strategy.select_slot(category, all_slots, occupied)
        if slot is None:
            raise NoFreeSlot(category)

        entry = LedgerEntry(
            ticket_id=self.id_generator.new_ticket_id(),
            vehicle_id=vehicle_id,
            owner_name=owner_name,
            category=category,
            slot_id=slot.slot_id,
            entry_time=self.clock.now(),
        )
        self.logger.debug(f"Proposed slot {slot.slot_id} for {vehicle_id} (ticket {entry.ticket_id})")
        return entry

    @staticmethod
    def compute_bill(
        entry: LedgerEntry,
        current_time: datetime,
        rate_table: Mapping[VehicleType, Decimal]
    ) -> BillQuote:
        """
        Quote the fee for an open entry at current_time

        Raises:
            EntryClosedError: the entry already has an exit time
            InvalidCategory: no rate configured for the entry's category
        """
        if not entry.is_open:
            raise EntryClosedError(f"Entry {entry.ticket_id} for {entry.vehicle_id} is already closed")

        pricing: PricingStrategy = HourlyPricingStrategy(rate_table)
        duration = current_time - entry.entry_time
        fee, hours, rate = pricing.calculate_parking_fee(entry.category, duration)

        return BillQuote(
            ticket_id=entry.ticket_id,
            exit_time=current_time,
            duration=duration,
            billed_hours=hours,
            hourly_rate=rate,
            fee=fee,
        )

    @staticmethod
    def close_entry(entry: LedgerEntry, exit_time: datetime, fee: Decimal) -> None:
        """
        Apply exit time and fee to an open entry

        Raises:
            EntryClosedError: the entry was closed before
        """
        if fee is None:
            raise ValidationError("Fee is required to close an entry")
        entry.close(exit_time, fee)
