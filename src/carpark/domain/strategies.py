# File: src/carpark/domain/strategies.py
"""
Strategy Pattern Implementation for the Car Park Ledger

This module encapsulates the two replaceable algorithms of the ledger:
1. Slot Allocation Strategies - which free slot a vehicle receives
2. Pricing Strategies - how a parking duration turns into a fee

Both are pure: they read the slots, entries and rates handed to them and
never touch the record store.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Sequence, AbstractSet, Tuple, Mapping
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
import logging

from .models import Slot, VehicleType, billable_hours
from .exceptions import InvalidCategory


CENT = Decimal('0.01')


# ============================================================================
# STRATEGY INTERFACES
# ============================================================================

class SlotAllocationStrategy(ABC):
    """
    Abstract base class for slot allocation strategies
    Implementations must be deterministic for a given slot list and occupied set
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def select_slot(
        self,
        category: VehicleType,
        all_slots: Sequence[Slot],
        occupied_slot_ids: AbstractSet[str]
    ) -> Optional[Slot]:
        """
        Choose a free slot of the given category
        Returns: Slot if one is free, None otherwise
        """
        pass


class PricingStrategy(ABC):
    """
    Abstract base class for pricing strategies
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def calculate_parking_fee(
        self,
        category: VehicleType,
        duration: timedelta
    ) -> Tuple[Decimal, int, Decimal]:
        """
        Calculate the fee for a parking duration
        Returns: (fee, billed_hours, hourly_rate)
        """
        pass


# ============================================================================
# SLOT ALLOCATION STRATEGIES
# ============================================================================

class RegistrationOrderStrategy(SlotAllocationStrategy):
    """
    Strategy: first free slot in registration order
    - Slots are considered in the order they were added to the store
    - Only slots of the exact requested category qualify
    """

    def select_slot(
        self,
        category: VehicleType,
        all_slots: Sequence[Slot],
        occupied_slot_ids: AbstractSet[str]
    ) -> Optional[Slot]:
        self.logger.debug(f"Selecting slot for {category} among {len(all_slots)} slots")

        for slot in all_slots:
            if slot.category is category and slot.slot_id not in occupied_slot_ids:
                return slot
        return None


class SortedIdentifierStrategy(SlotAllocationStrategy):
    """
    Strategy: lowest free slot identifier
    - Independent of the order slots were loaded or added
    - Ties cannot occur because slot identifiers are unique
    """

    def select_slot(
        self,
        category: VehicleType,
        all_slots: Sequence[Slot],
        occupied_slot_ids: AbstractSet[str]
    ) -> Optional[Slot]:
        free = [
            slot for slot in all_slots
            if slot.category is category and slot.slot_id not in occupied_slot_ids
        ]
        if not free:
            return None
        return min(free, key=lambda slot: slot.slot_id)


# ============================================================================
# PRICING STRATEGIES
# ============================================================================

class HourlyPricingStrategy(PricingStrategy):
    """
    Hourly pricing strategy
    - Fixed per-hour rate by vehicle category
    - Partial hours are rounded up
    - At least one hour is always charged
    """

    def __init__(self, hourly_rates: Mapping[VehicleType, Decimal]):
        super().__init__()
        self.hourly_rates: Dict[VehicleType, Decimal] = {
            category: Decimal(str(rate)) for category, rate in hourly_rates.items()
        }

    def rate_for(self, category: VehicleType) -> Decimal:
        try:
            return self.hourly_rates[category]
        except KeyError:
            raise InvalidCategory(f"No hourly rate configured for {category}")

    def calculate_parking_fee(
        self,
        category: VehicleType,
        duration: timedelta
    ) -> Tuple[Decimal, int, Decimal]:
        rate = self.rate_for(category)
        hours = billable_hours(duration)
        fee = (rate * hours).quantize(CENT, rounding=ROUND_HALF_UP)

        self.logger.debug(f"{category}: {duration} billed as {hours}h at {rate}/h = {fee}")
        return fee, hours, rate


class ParkingStrategyFactory:
    """Creates allocation strategies by name (used by configuration)"""

    _ALLOCATION_STRATEGIES = {
        "registration_order": RegistrationOrderStrategy,
        "sorted_identifier": SortedIdentifierStrategy,
    }

    @classmethod
    def available(cls) -> Tuple[str, ...]:
        return tuple(cls._ALLOCATION_STRATEGIES)

    @classmethod
    def create_allocation_strategy(cls, name: str = "registration_order") -> SlotAllocationStrategy:
        try:
            return cls._ALLOCATION_STRATEGIES[name]()
        except KeyError:
            raise ValueError(
                f"Unknown allocation strategy {name!r}; expected one of {', '.join(cls.available())}"
            )
