#!/usr/bin/env python3
"""
Allocation & Billing Engine Unit Tests

Tests for slot allocation strategies, hourly pricing and the
AllocationEngine that combines them.
"""

import unittest
from unittest.mock import Mock
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(TESTS_DIR.parent / "src"))
sys.path.insert(0, str(TESTS_DIR))

from fakes import FixedClock, SequentialTicketIds, START
from carpark.config import DEFAULT_HOURLY_RATES
from carpark.domain.engine import AllocationEngine
from carpark.domain.models import Slot, LedgerEntry, VehicleType
from carpark.domain.strategies import (
    RegistrationOrderStrategy, SortedIdentifierStrategy,
    HourlyPricingStrategy, ParkingStrategyFactory
)
from carpark.domain.exceptions import (
    DuplicateVehicle, NoFreeSlot, ValidationError, InvalidCategory, EntryClosedError
)


SLOTS = [
    Slot("A03", VehicleType.FOUR_WHEELER),
    Slot("A01", VehicleType.FOUR_WHEELER),
    Slot("B01", VehicleType.TWO_WHEELER),
    Slot("A02", VehicleType.FOUR_WHEELER),
]


def open_entry(vehicle_id, slot_id, category=VehicleType.FOUR_WHEELER, ticket_id=None):
    return LedgerEntry(
        ticket_id=ticket_id or f"T-{vehicle_id}",
        vehicle_id=vehicle_id,
        owner_name="",
        category=category,
        slot_id=slot_id,
        entry_time=START,
    )


class TestAllocationStrategies(unittest.TestCase):
    """Tests for the tie-break among free slots"""

    def test_registration_order_takes_first_free_slot(self):
        strategy = RegistrationOrderStrategy()
        slot = strategy.select_slot(VehicleType.FOUR_WHEELER, SLOTS, {"A03"})
        self.assertEqual(slot.slot_id, "A01")

    def test_sorted_identifier_takes_lowest_free_id(self):
        strategy = SortedIdentifierStrategy()
        slot = strategy.select_slot(VehicleType.FOUR_WHEELER, SLOTS, {"A01"})
        self.assertEqual(slot.slot_id, "A02")

    def test_only_exact_category_qualifies(self):
        for strategy in (RegistrationOrderStrategy(), SortedIdentifierStrategy()):
            with self.subTest(strategy=str(strategy)):
                self.assertIsNone(strategy.select_slot(VehicleType.EV, SLOTS, set()))
                slot = strategy.select_slot(VehicleType.TWO_WHEELER, SLOTS, set())
                self.assertEqual(slot.slot_id, "B01")

    def test_factory_creates_by_name(self):
        self.assertIsInstance(
            ParkingStrategyFactory.create_allocation_strategy("sorted_identifier"),
            SortedIdentifierStrategy
        )
        self.assertIn("registration_order", ParkingStrategyFactory.available())

    def test_factory_rejects_unknown_name(self):
        with self.assertRaises(ValueError):
            ParkingStrategyFactory.create_allocation_strategy("random")


class TestHourlyPricing(unittest.TestCase):
    """Tests for fee calculation"""

    def setUp(self):
        self.pricing = HourlyPricingStrategy(DEFAULT_HOURLY_RATES)

    def test_partial_hours_round_up(self):
        fee, hours, rate = self.pricing.calculate_parking_fee(
            VehicleType.FOUR_WHEELER, timedelta(minutes=90)
        )
        self.assertEqual(hours, 2)
        self.assertEqual(rate, Decimal('5.00'))
        self.assertEqual(fee, Decimal('10.00'))

    def test_minimum_one_hour(self):
        for duration in (timedelta(0), timedelta(seconds=-5), timedelta(minutes=1)):
            with self.subTest(duration=duration):
                fee, hours, _ = self.pricing.calculate_parking_fee(VehicleType.TWO_WHEELER, duration)
                self.assertEqual(hours, 1)
                self.assertEqual(fee, Decimal('2.00'))

    def test_fee_has_two_decimal_places(self):
        pricing = HourlyPricingStrategy({VehicleType.EV: Decimal('1.255')})
        fee, _, _ = pricing.calculate_parking_fee(VehicleType.EV, timedelta(hours=1))
        self.assertEqual(fee, Decimal('1.26'))

    def test_missing_rate(self):
        pricing = HourlyPricingStrategy({VehicleType.FOUR_WHEELER: Decimal('5')})
        with self.assertRaises(InvalidCategory):
            pricing.calculate_parking_fee(VehicleType.VIP, timedelta(hours=1))


class TestAllocationEngine(unittest.TestCase):
    """Tests for AllocationEngine.allocate_slot and compute_bill"""

    def setUp(self):
        self.clock = FixedClock()
        self.engine = AllocationEngine(clock=self.clock, id_generator=SequentialTicketIds())

    def test_allocate_returns_open_entry(self):
        entry = self.engine.allocate_slot(
            VehicleType.FOUR_WHEELER, " ka-01-hh-1234 ", "Asha", [], SLOTS
        )
        self.assertEqual(entry.vehicle_id, "KA-01-HH-1234")
        self.assertEqual(entry.slot_id, "A03")
        self.assertEqual(entry.ticket_id, "T0001")
        self.assertEqual(entry.entry_time, START)
        self.assertTrue(entry.is_open)

    def test_allocate_skips_occupied_slots(self):
        entries = [open_entry("KA-01", "A03"), open_entry("KA-02", "A01")]
        entry = self.engine.allocate_slot(VehicleType.FOUR_WHEELER, "KA-03", "", entries, SLOTS)
        self.assertEqual(entry.slot_id, "A02")

    def test_closed_entries_do_not_occupy(self):
        closed = open_entry("KA-01", "A03")
        closed.close(START + timedelta(hours=1), Decimal('5.00'))
        entry = self.engine.allocate_slot(VehicleType.FOUR_WHEELER, "KA-01", "", [closed], SLOTS)
        self.assertEqual(entry.slot_id, "A03")

    def test_duplicate_vehicle_case_insensitive(self):
        entries = [open_entry("KA-01-HH-1234", "A03")]
        with self.assertRaises(DuplicateVehicle):
            self.engine.allocate_slot(VehicleType.FOUR_WHEELER, "ka-01-hh-1234", "", entries, SLOTS)

    def test_no_free_slot(self):
        entries = [open_entry("X1", "A01"), open_entry("X2", "A02"), open_entry("X3", "A03")]
        with self.assertRaises(NoFreeSlot):
            self.engine.allocate_slot(VehicleType.FOUR_WHEELER, "X4", "", entries, SLOTS)

    def test_empty_vehicle_id(self):
        with self.assertRaises(ValidationError):
            self.engine.allocate_slot(VehicleType.FOUR_WHEELER, "  ", "", [], SLOTS)

    def test_allocation_is_deterministic(self):
        first = AllocationEngine(FixedClock(), SequentialTicketIds()).allocate_slot(
            VehicleType.FOUR_WHEELER, "KA-09", "", [], SLOTS
        )
        second = AllocationEngine(FixedClock(), SequentialTicketIds()).allocate_slot(
            VehicleType.FOUR_WHEELER, "KA-09", "", [], SLOTS
        )
        self.assertEqual(first, second)

    def test_uses_configured_strategy(self):
        strategy = Mock()
        strategy.select_slot.return_value = SLOTS[3]
        engine = AllocationEngine(self.clock, SequentialTicketIds(), allocation_strategy=strategy)

        entry = engine.allocate_slot(VehicleType.FOUR_WHEELER, "KA-01", "", [], SLOTS)

        self.assertEqual(entry.slot_id, "A02")
        strategy.select_slot.assert_called_once_with(VehicleType.FOUR_WHEELER, SLOTS, set())

    def test_compute_bill_does_not_close_entry(self):
        entry = open_entry("KA-01", "A01")
        quote = AllocationEngine.compute_bill(entry, START + timedelta(minutes=90), DEFAULT_HOURLY_RATES)

        self.assertEqual(quote.billed_hours, 2)
        self.assertEqual(quote.fee, Decimal('10.00'))
        self.assertEqual(quote.exit_time, START + timedelta(minutes=90))
        self.assertTrue(entry.is_open)

    def test_compute_bill_never_below_one_hour(self):
        entry = open_entry("KA-01", "A01")
        quote = AllocationEngine.compute_bill(entry, START - timedelta(minutes=10), DEFAULT_HOURLY_RATES)
        self.assertEqual(quote.billed_hours, 1)
        self.assertEqual(quote.fee, Decimal('5.00'))

    def test_compute_bill_rejects_closed_entry(self):
        entry = open_entry("KA-01", "A01")
        AllocationEngine.close_entry(entry, START + timedelta(hours=1), Decimal('5.00'))
        with self.assertRaises(EntryClosedError):
            AllocationEngine.compute_bill(entry, START + timedelta(hours=2), DEFAULT_HOURLY_RATES)

    def test_close_entry_twice(self):
        entry = open_entry("KA-01", "A01")
        AllocationEngine.close_entry(entry, START + timedelta(hours=1), Decimal('5.00'))
        with self.assertRaises(EntryClosedError):
            AllocationEngine.close_entry(entry, START + timedelta(hours=2), Decimal('10.00'))


if __name__ == '__main__':
    unittest.main()
