#!/usr/bin/env python3
"""
Configuration Unit Tests
"""

import os
import unittest
from unittest.mock import patch
import sys
import tempfile
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent / "src"))

from carpark.config import CarParkConfig, load_config, CONFIG_ENV_VAR, DEFAULT_HOURLY_RATES
from carpark.domain.models import VehicleType
from carpark.domain.exceptions import ConfigError


class TestCarParkConfig(unittest.TestCase):

    def test_defaults(self):
        config = CarParkConfig()
        self.assertEqual(config.storage_backend, "csv")
        self.assertEqual(config.allocation_strategy, "registration_order")
        self.assertEqual(config.hourly_rates, DEFAULT_HOURLY_RATES)
        self.assertEqual(config.path_for("ledger"), Path("data") / "parking_ledger.csv")
        self.assertTrue(config.resolved_database_url().startswith("sqlite:///"))

    def test_rates_accept_names_and_codes(self):
        config = CarParkConfig(hourly_rates={"four_wheeler": "6.50", 0: 3})
        self.assertEqual(config.hourly_rates[VehicleType.FOUR_WHEELER], Decimal('6.50'))
        self.assertEqual(config.hourly_rates[VehicleType.TWO_WHEELER], Decimal('3'))
        # Unlisted categories keep their defaults
        self.assertEqual(config.hourly_rates[VehicleType.VIP], Decimal('10.00'))

    def test_invalid_values(self):
        invalid = [
            {"hourly_rates": {"TRUCK": "1.00"}},
            {"hourly_rates": {"EV": "cheap"}},
            {"hourly_rates": {"EV": "-1"}},
            {"storage_backend": "redis"},
            {"allocation_strategy": "random"},
            {"log_level": "chatty"},
            {"unknown_setting": True},
        ]
        for values in invalid:
            with self.subTest(values=values):
                with self.assertRaises(ValueError):
                    CarParkConfig(**values)


class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "carpark.yaml"

    def tearDown(self):
        self.tmp.cleanup()

    def test_missing_file_gives_defaults(self):
        config = load_config(self.path)
        self.assertEqual(config, CarParkConfig())

    def test_yaml_values_and_overrides(self):
        self.path.write_text(
            "storage_backend: sqlite\n"
            "data_dir: /var/lib/carpark\n"
            "hourly_rates:\n"
            "  VIP: '12.00'\n",
            encoding="utf-8"
        )
        config = load_config(self.path, data_dir="/tmp/override", log_level=None)

        self.assertEqual(config.storage_backend, "sqlite")
        self.assertEqual(config.data_dir, Path("/tmp/override"))
        self.assertEqual(config.hourly_rates[VehicleType.VIP], Decimal('12.00'))
        self.assertEqual(config.log_level, "INFO")

    def test_environment_variable_names_file(self):
        self.path.write_text("currency_symbol: 'EUR '\n", encoding="utf-8")
        with patch.dict(os.environ, {CONFIG_ENV_VAR: str(self.path)}):
            config = load_config()
        self.assertEqual(config.currency_symbol, "EUR ")

    def test_malformed_file(self):
        for content in ("storage_backend: [csv\n", "- just\n- a list\n", "storage_backend: mongo\n"):
            with self.subTest(content=content):
                self.path.write_text(content, encoding="utf-8")
                with self.assertRaises(ConfigError):
                    load_config(self.path)


if __name__ == '__main__':
    unittest.main()
