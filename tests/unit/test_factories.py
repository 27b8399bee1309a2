#!/usr/bin/env python3
"""
Factory Unit Tests

Tests for default data, ticket numbers and the storage/service factories.
"""

import re
import unittest
import sys
import tempfile
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(TESTS_DIR.parent / "src"))
sys.path.insert(0, str(TESTS_DIR))

from fakes import FixedClock
from carpark.config import CarParkConfig
from carpark.domain.models import VehicleType, UserRole
from carpark.domain.strategies import SortedIdentifierStrategy
from carpark.infrastructure.factories import (
    DefaultDataFactory, TicketNumberGenerator, StorageProviderFactory, ParkingServiceFactory
)
from carpark.infrastructure.repositories import (
    CsvStorageProvider, SQLAlchemyStorageProvider, InMemoryStorageProvider
)


class TestDefaultDataFactory(unittest.TestCase):

    def test_default_slots(self):
        slots = DefaultDataFactory.create_slots()
        four = [slot.slot_id for slot in slots if slot.category is VehicleType.FOUR_WHEELER]
        two = [slot.slot_id for slot in slots if slot.category is VehicleType.TWO_WHEELER]
        self.assertEqual(four[0], "A01")
        self.assertEqual(four[-1], "A20")
        self.assertEqual(len(four), 20)
        self.assertEqual(two, [f"B{i:02d}" for i in range(1, 11)])

    def test_default_users(self):
        users = {user.username: user.role for user in DefaultDataFactory.create_users()}
        self.assertEqual(users, {"admin": UserRole.ADMIN, "attendant1": UserRole.ATTENDANT})


class TestTicketNumberGenerator(unittest.TestCase):

    def test_format_and_uniqueness(self):
        generator = TicketNumberGenerator(FixedClock())
        first = generator.new_ticket_id()
        second = generator.new_ticket_id()

        self.assertRegex(first, re.compile(r"^T240301090000-[0-9A-F]{6}$"))
        self.assertNotEqual(first, second)


class TestStorageProviderFactory(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_backends(self):
        expectations = {
            "csv": CsvStorageProvider,
            "sqlite": SQLAlchemyStorageProvider,
            "memory": InMemoryStorageProvider,
        }
        for backend, provider_class in expectations.items():
            with self.subTest(backend=backend):
                config = CarParkConfig(data_dir=self.data_dir, storage_backend=backend)
                provider = StorageProviderFactory.create(config)
                self.assertIsInstance(provider, provider_class)
                if isinstance(provider, SQLAlchemyStorageProvider):
                    provider.engine.dispose()

    def test_csv_paths_follow_configuration(self):
        config = CarParkConfig(data_dir=self.data_dir, ledger_file="ledger.csv")
        provider = StorageProviderFactory.create(config)
        self.assertEqual(provider.paths["ledger"], self.data_dir / "ledger.csv")


class TestParkingServiceFactory(unittest.TestCase):

    def test_creates_loaded_service(self):
        config = CarParkConfig(storage_backend="memory", allocation_strategy="sorted_identifier")
        service = ParkingServiceFactory.create(config, clock=FixedClock())

        self.assertEqual(len(service.store.slots), 30)
        self.assertIsInstance(service.engine.allocation_strategy, SortedIdentifierStrategy)
        self.assertEqual(service.rate_table, config.hourly_rates)


if __name__ == '__main__':
    unittest.main()
