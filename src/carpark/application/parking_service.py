# File: src/carpark/application/parking_service.py
"""
Car Park Application Service

This module implements the session orchestrator of the ledger. It owns the
record store, asks the allocation engine for proposals, commits them and
persists the affected records right away.

Use Cases:
1. Vehicle entry (Absent -> Open)
2. Vehicle exit with operator-confirmed billing (Open -> Closed)
3. Availability and reports
4. Slot administration
5. Loading and saving all records

Expected failures (bad input, duplicate vehicle, full car park, unknown
vehicle) come back as result DTOs with an error kind and leave the store
unchanged. A failed save keeps the in-memory change and is reported as a
storage warning on the result.
"""

from typing import Callable, Dict, List, Optional, Mapping
from datetime import date
from decimal import Decimal
import logging

from ..domain.aggregates import RecordStore
from ..domain.engine import AllocationEngine, Clock
from ..domain.models import Slot, User, VehicleType
from ..domain.exceptions import (
    CarParkError, StorageError, RecordsNotFound, ValidationError
)
from ..infrastructure.repositories import (
    StorageProvider, ENCODERS, DECODERS, USERS, SLOTS, LEDGER
)
from ..infrastructure.factories import DefaultDataFactory
from .dtos import (
    EntryRequestDTO, TicketDTO, BillQuoteDTO, ReceiptDTO, SlotResultDTO,
    AvailabilityDTO, ParkedVehicleDTO, IncomeLineDTO, IncomeReportDTO
)


ConfirmCallback = Callable[[BillQuoteDTO], bool]


class ParkingService:
    """
    Session orchestrator for the car park ledger

    Args:
        storage: Storage provider for users, slots and ledger records
        engine: Allocation & billing engine
        rate_table: Hourly rate per vehicle category
        clock: Supplies exit times (defaults to the engine's clock)
        store: Pre-built record store; normally filled by load()
    """

    def __init__(
        self,
        storage: StorageProvider,
        engine: AllocationEngine,
        rate_table: Mapping[VehicleType, Decimal],
        clock: Optional[Clock] = None,
        store: Optional[RecordStore] = None
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.storage = storage
        self.engine = engine
        self.rate_table: Dict[VehicleType, Decimal] = dict(rate_table)
        self.clock = clock or engine.clock
        self.store = store or RecordStore()
        self.load_warnings: List[str] = []

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def load(self) -> RecordStore:
        """
        Load every record kind into a fresh store
        A kind that cannot be loaded falls back to the built-in defaults
        """
        self.load_warnings = []
        store = RecordStore()
        self._load_kind(USERS, store.replace_users)
        self._load_kind(SLOTS, store.replace_slots)
        self._load_kind(LEDGER, store.replace_ledger)
        self.store = store
        self.logger.info(f"Loaded {store}")
        return store

    def _load_kind(self, kind: str, replace: Callable[[list], None]) -> None:
        try:
            records = self.storage.load(kind)
            replace([DECODERS[kind](record) for record in records])
            return
        except RecordsNotFound:
            self.logger.info(f"No saved {kind} records, using defaults")
        except StorageError as e:
            warning = f"Error loading {kind}: {e}. Using default data."
            try:
                backup = self.storage.backup_corrupt(kind)
            except StorageError as backup_error:
                self.logger.error(f"Could not back up {kind}: {backup_error}")
                backup = None
            if backup:
                warning += f" The unreadable data was copied to {backup}."
            self.logger.warning(warning)
            self.load_warnings.append(warning)
        replace(DefaultDataFactory.provider_for(kind)())

    def _persist(self, kind: str) -> Optional[str]:
        """Save one record kind; returns a warning message instead of raising"""
        items = {
            USERS: self.store.users,
            SLOTS: self.store.slots,
            LEDGER: self.store.ledger,
        }[kind]
        try:
            self.storage.save(kind, [ENCODERS[kind](item) for item in items])
            return None
        except StorageError as e:
            self.logger.error(f"Failed to save {kind}: {e}")
            return f"Change applied but may not be durable: {e}"

    def save_all(self) -> List[str]:
        """Save users, slots and ledger; returns storage warnings (empty on success)"""
        warnings = [self._persist(kind) for kind in (USERS, SLOTS, LEDGER)]
        return [warning for warning in warnings if warning]

    # ========================================================================
    # VEHICLE ENTRY / EXIT
    # ========================================================================

    def enter_vehicle(
        self,
        vehicle_id: str,
        owner_name: str,
        category: VehicleType
    ) -> TicketDTO:
        """
        Record a vehicle entry

        Use Case: Vehicle Entry
        1. Validate input
        2. Ask the engine for a free slot (rejects duplicates)
        3. Commit the new entry to the store
        4. Persist the ledger immediately
        """
        self.logger.info(f"Processing entry request for {vehicle_id}")
        try:
            request = EntryRequestDTO(vehicle_id=vehicle_id or "", owner_name=owner_name or "", category=category)
        except ValueError as e:
            return TicketDTO.failure(ValidationError(_first_error(e)))

        try:
            entry = self.engine.allocate_slot(
                category=request.category,
                vehicle_id=request.vehicle_id,
                owner_name=request.owner_name,
                open_entries=self.store.open_entries(),
                all_slots=self.store.slots,
            )
            self.store.add_entry(entry)
        except CarParkError as e:
            self.logger.info(f"Entry rejected for {request.vehicle_id}: {e}")
            return TicketDTO.failure(e)

        warning = self._persist(LEDGER)
        return TicketDTO.from_entry(entry, storage_warning=warning)

    def quote_exit(self, vehicle_id: str) -> BillQuoteDTO:
        """
        Bill an open entry at the current time without closing it
        Raises: VehicleNotFound, ValidationError
        """
        entry = self.store.get_open_entry(vehicle_id)
        quote = self.engine.compute_bill(entry, self.clock.now(), self.rate_table)
        return BillQuoteDTO.from_quote(entry, quote)

    def exit_vehicle(self, vehicle_id: str, confirm_callback: ConfirmCallback) -> ReceiptDTO:
        """
        Record a vehicle exit

        Use Case: Vehicle Exit & Billing
        1. Find the vehicle's open entry
        2. Quote the fee at the current time
        3. Ask the operator to confirm; a rejection changes nothing
        4. Close the entry with the quoted exit time and fee
        5. Persist the ledger immediately
        """
        self.logger.info(f"Processing exit request for {vehicle_id}")
        try:
            entry = self.store.get_open_entry(vehicle_id)
            quote = self.engine.compute_bill(entry, self.clock.now(), self.rate_table)
        except CarParkError as e:
            self.logger.info(f"Exit rejected for {vehicle_id}: {e}")
            return ReceiptDTO.failure(e)

        quote_dto = BillQuoteDTO.from_quote(entry, quote)
        if not confirm_callback(quote_dto):
            self.logger.info(f"Exit cancelled by operator for {entry.vehicle_id}")
            return ReceiptDTO(success=False, cancelled=True, message="Exit cancelled.", quote=quote_dto)

        try:
            self.store.record_exit(entry, quote.exit_time, quote.fee)
        except CarParkError as e:
            return ReceiptDTO.failure(e, quote=quote_dto)

        warning = self._persist(LEDGER)
        return ReceiptDTO(
            success=True,
            message="Vehicle exited successfully. Slot is now free.",
            storage_warning=warning,
            quote=quote_dto,
        )

    # ========================================================================
    # AVAILABILITY & REPORTS
    # ========================================================================

    def available_slots(self, category: VehicleType) -> int:
        free, _ = self.store.availability(category)
        return free

    def availability_summary(self) -> List[AvailabilityDTO]:
        """Free/total per category, skipping categories without slots (except the two defaults)"""
        summary = []
        for category in VehicleType:
            free, total = self.store.availability(category)
            if total or category in (VehicleType.FOUR_WHEELER, VehicleType.TWO_WHEELER):
                summary.append(AvailabilityDTO(category=category, free=free, total=total))
        return summary

    def currently_parked(self) -> List[ParkedVehicleDTO]:
        entries = sorted(self.store.open_entries(), key=lambda entry: entry.entry_time)
        return [ParkedVehicleDTO.from_entry(entry) for entry in entries]

    def daily_income(self, day: Optional[date] = None) -> IncomeReportDTO:
        day = day or self.clock.now().date()
        closed = sorted(
            (entry for entry in self.store.ledger if entry.exit_time and entry.exit_time.date() == day),
            key=lambda entry: entry.exit_time
        )
        lines = [
            IncomeLineDTO(
                vehicle_id=entry.vehicle_id,
                ticket_id=entry.ticket_id,
                exit_time=entry.exit_time,
                fee=entry.fee or Decimal('0'),
            )
            for entry in closed
        ]
        return IncomeReportDTO(
            day=day,
            vehicles_exited=len(lines),
            total_income=sum((line.fee for line in lines), Decimal('0.00')),
            lines=lines,
        )

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def list_slots(self) -> List[Slot]:
        return sorted(self.store.slots, key=lambda slot: slot.slot_id)

    def list_users(self) -> List[User]:
        return list(self.store.users)

    def add_slot(self, slot_id: str, category: VehicleType) -> SlotResultDTO:
        try:
            slot = self.store.add_slot(Slot(slot_id, category))
        except CarParkError as e:
            return SlotResultDTO.failure(e)
        return SlotResultDTO.from_slot(slot, "Slot added.", storage_warning=self._persist(SLOTS))

    def remove_slot(self, slot_id: str) -> SlotResultDTO:
        try:
            slot = self.store.remove_slot(slot_id)
        except CarParkError as e:
            return SlotResultDTO.failure(e)
        return SlotResultDTO.from_slot(slot, "Slot removed.", storage_warning=self._persist(SLOTS))


def _first_error(error: ValueError) -> str:
    """Readable message from a pydantic validation error"""
    errors = getattr(error, "errors", None)
    if callable(errors):
        details = errors()
        if details:
            return str(details[0].get("msg", error)).replace("Value error, ", "")
    return str(error)
