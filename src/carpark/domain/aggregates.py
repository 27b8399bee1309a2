# File: src/carpark/domain/aggregates.py
"""
Record Store aggregate for the Car Park Ledger

The RecordStore is the single owner of users, slots and ledger entries.
Every mutation goes through it so the ledger invariants hold at all times:

- at most one open entry references a slot
- at most one open entry references a vehicle (case-insensitive)
- ticket identifiers are unique
- entries are appended and closed, never removed

Occupancy is derived from open entries. The store keeps slot->entry and
vehicle->entry indexes of open entries and rebuilds them whenever the
ledger is replaced.
"""

from typing import List, Optional, Dict, Set, Tuple, Iterable
from datetime import datetime
from decimal import Decimal
import logging

from .models import Slot, User, LedgerEntry, VehicleType, normalize_identifier
from .engine import AllocationEngine
from .exceptions import (
    ValidationError, DuplicateSlot, SlotOccupied, DuplicateVehicle,
    VehicleNotFound, CorruptRecordError
)


class RecordStore:
    """
    Aggregate root owning the in-memory collections

    Slots keep their registration order; allocation strategies rely on it.
    """

    def __init__(
        self,
        users: Optional[Iterable[User]] = None,
        slots: Optional[Iterable[Slot]] = None,
        ledger: Optional[Iterable[LedgerEntry]] = None
    ):
        self._logger = logging.getLogger(self.__class__.__name__)
        self._users: List[User] = []
        self._slots: List[Slot] = []
        self._ledger: List[LedgerEntry] = []
        self._open_by_slot: Dict[str, LedgerEntry] = {}
        self._open_by_vehicle: Dict[str, LedgerEntry] = {}
        self._version = 0

        self.replace_users(users or [])
        self.replace_slots(slots or [])
        self.replace_ledger(ledger or [])

    # ========================================================================
    # BULK REPLACEMENT (loading)
    # ========================================================================

    def replace_users(self, users: Iterable[User]) -> None:
        users = list(users)
        seen: Set[str] = set()
        for user in users:
            key = user.username.casefold()
            if key in seen:
                raise CorruptRecordError(f"Duplicate user name: {user.username}", kind="users")
            seen.add(key)
        self._users = users

    def replace_slots(self, slots: Iterable[Slot]) -> None:
        slots = list(slots)
        seen: Set[str] = set()
        for slot in slots:
            if slot.slot_id in seen:
                raise CorruptRecordError(f"Duplicate slot number: {slot.slot_id}", kind="slots")
            seen.add(slot.slot_id)
        self._slots = slots

    def replace_ledger(self, ledger: Iterable[LedgerEntry]) -> None:
        """
        Replace the ledger and rebuild the open-entry indexes
        Raises CorruptRecordError if the entries break a ledger invariant
        """
        ledger = list(ledger)
        open_by_slot: Dict[str, LedgerEntry] = {}
        open_by_vehicle: Dict[str, LedgerEntry] = {}
        tickets: Set[str] = set()

        for entry in ledger:
            if entry.ticket_id in tickets:
                raise CorruptRecordError(f"Duplicate ticket number: {entry.ticket_id}", kind="ledger")
            tickets.add(entry.ticket_id)
            if not entry.is_open:
                continue
            if entry.slot_id in open_by_slot:
                raise CorruptRecordError(
                    f"Slot {entry.slot_id} is held by open tickets "
                    f"{open_by_slot[entry.slot_id].ticket_id} and {entry.ticket_id}",
                    kind="ledger"
                )
            vehicle_key = entry.vehicle_id.casefold()
            if vehicle_key in open_by_vehicle:
                raise CorruptRecordError(
                    f"Vehicle {entry.vehicle_id} has more than one open ticket",
                    kind="ledger"
                )
            open_by_slot[entry.slot_id] = entry
            open_by_vehicle[vehicle_key] = entry

        unknown = set(open_by_slot) - {slot.slot_id for slot in self._slots}
        if unknown:
            self._logger.warning(f"Open tickets reference unregistered slots: {', '.join(sorted(unknown))}")

        self._ledger = ledger
        self._open_by_slot = open_by_slot
        self._open_by_vehicle = open_by_vehicle
        self._increment_version()

    # ========================================================================
    # QUERY METHODS (Read-only)
    # ========================================================================

    @property
    def version(self) -> int:
        """Incremented on every ledger mutation"""
        return self._version

    @property
    def users(self) -> Tuple[User, ...]:
        return tuple(self._users)

    @property
    def slots(self) -> Tuple[Slot, ...]:
        """Slots in registration order"""
        return tuple(self._slots)

    @property
    def ledger(self) -> Tuple[LedgerEntry, ...]:
        return tuple(self._ledger)

    def open_entries(self) -> List[LedgerEntry]:
        return [entry for entry in self._ledger if entry.is_open]

    def occupied_slot_ids(self) -> Set[str]:
        return set(self._open_by_slot)

    def is_occupied(self, slot_id: str) -> bool:
        return normalize_identifier(slot_id, "Slot number") in self._open_by_slot

    def get_slot(self, slot_id: str) -> Optional[Slot]:
        slot_id = normalize_identifier(slot_id, "Slot number")
        for slot in self._slots:
            if slot.slot_id == slot_id:
                return slot
        return None

    def find_open_entry(self, vehicle_id: str) -> Optional[LedgerEntry]:
        return self._open_by_vehicle.get((vehicle_id or "").strip().casefold())

    def get_open_entry(self, vehicle_id: str) -> LedgerEntry:
        """Like find_open_entry but raises VehicleNotFound"""
        vehicle_id = normalize_identifier(vehicle_id, "Vehicle number")
        entry = self.find_open_entry(vehicle_id)
        if entry is None:
            raise VehicleNotFound(vehicle_id)
        return entry

    def find_user(self, username: str, password: str) -> Optional[User]:
        for user in self._users:
            if user.matches(username, password):
                return user
        return None

    def availability(self, category: VehicleType) -> Tuple[int, int]:
        """Returns: (free, total) slot counts for a category"""
        of_category = [slot for slot in self._slots if slot.category is category]
        occupied = sum(1 for slot in of_category if slot.slot_id in self._open_by_slot)
        return len(of_category) - occupied, len(of_category)

    # ========================================================================
    # LEDGER MUTATIONS
    # ========================================================================

    def add_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Commit a new open entry
        Re-checks slot and vehicle occupancy so a stale proposal cannot break the invariants
        """
        if not entry.is_open:
            raise ValidationError(f"Only open entries can be added (ticket {entry.ticket_id})")
        if self.get_slot(entry.slot_id) is None:
            raise ValidationError(f"Unknown slot {entry.slot_id}")
        if entry.slot_id in self._open_by_slot:
            raise SlotOccupied(f"Slot {entry.slot_id} is already occupied")
        vehicle_key = entry.vehicle_id.casefold()
        if vehicle_key in self._open_by_vehicle:
            raise DuplicateVehicle(entry.vehicle_id)
        if any(existing.ticket_id == entry.ticket_id for existing in self._ledger):
            raise ValidationError(f"Ticket number {entry.ticket_id} already exists")

        self._ledger.append(entry)
        self._open_by_slot[entry.slot_id] = entry
        self._open_by_vehicle[vehicle_key] = entry
        self._increment_version()

        self._logger.info(f"Vehicle {entry.vehicle_id} entered slot {entry.slot_id} (Ticket: {entry.ticket_id})")
        return entry

    def record_exit(self, entry: LedgerEntry, exit_time: datetime, fee: Decimal) -> LedgerEntry:
        """Close an entry held by this store and release its slot"""
        if not any(existing is entry for existing in self._ledger):
            raise ValidationError(f"Ticket {entry.ticket_id} is not part of this ledger")

        AllocationEngine.close_entry(entry, exit_time, fee)

        self._open_by_slot.pop(entry.slot_id, None)
        self._open_by_vehicle.pop(entry.vehicle_id.casefold(), None)
        self._increment_version()

        self._logger.info(f"Vehicle {entry.vehicle_id} left slot {entry.slot_id}. Fee: {entry.fee}")
        return entry

    # ========================================================================
    # SLOT ADMINISTRATION
    # ========================================================================

    def add_slot(self, slot: Slot) -> Slot:
        if self.get_slot(slot.slot_id) is not None:
            raise DuplicateSlot(f"A slot with number {slot.slot_id} already exists")
        self._slots.append(slot)
        self._logger.info(f"Slot {slot} added")
        return slot

    def remove_slot(self, slot_id: str) -> Slot:
        slot = self.get_slot(slot_id)
        if slot is None:
            raise ValidationError(f"Slot {normalize_identifier(slot_id)} not found")
        if slot.slot_id in self._open_by_slot:
            holder = self._open_by_slot[slot.slot_id]
            raise SlotOccupied(
                f"Slot {slot.slot_id} is occupied by {holder.vehicle_id} and cannot be removed"
            )
        self._slots.remove(slot)
        self._logger.info(f"Slot {slot} removed")
        return slot

    # ========================================================================
    # INTERNAL HELPER METHODS
    # ========================================================================

    def _increment_version(self) -> None:
        self._version += 1

    def _validate_invariants(self) -> None:
        """Recompute occupancy from the ledger and compare it to the indexes"""
        open_entries = self.open_entries()
        slot_ids = [entry.slot_id for entry in open_entries]
        vehicle_ids = [entry.vehicle_id.casefold() for entry in open_entries]

        if len(slot_ids) != len(set(slot_ids)):
            raise ValueError("A slot is referenced by more than one open entry")
        if len(vehicle_ids) != len(set(vehicle_ids)):
            raise ValueError("A vehicle has more than one open entry")
        if set(slot_ids) != set(self._open_by_slot):
            raise ValueError("Slot index out of sync with ledger")
        if set(vehicle_ids) != set(self._open_by_vehicle):
            raise ValueError("Vehicle index out of sync with ledger")

    def __str__(self) -> str:
        return (
            f"RecordStore({len(self._slots)} slots, {len(self._open_by_slot)} occupied, "
            f"{len(self._ledger)} ledger entries)"
        )
