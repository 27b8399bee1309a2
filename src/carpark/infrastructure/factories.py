# File: src/carpark/infrastructure/factories.py
"""
Factories for the Car Park Ledger

1. Default Data - Built-in users and slots used when nothing is persisted
2. Collaborators - System clock and ticket number generator
3. Storage Factory - Chooses a storage provider from configuration
4. Service Factory - Wires a ready-to-use ParkingService
"""

from typing import List, Optional, Callable
from datetime import datetime
import logging
import uuid

from ..config import CarParkConfig
from ..domain.models import User, Slot, LedgerEntry, UserRole, VehicleType
from ..domain.engine import AllocationEngine, Clock, TicketIdGenerator
from ..domain.strategies import ParkingStrategyFactory
from .repositories import (
    StorageProvider, CsvStorageProvider, SQLAlchemyStorageProvider,
    InMemoryStorageProvider, USERS, SLOTS, LEDGER
)


logger = logging.getLogger(__name__)


# ============================================================================
# DEFAULT DATA
# ============================================================================

class DefaultDataFactory:
    """Built-in data set used when a record kind cannot be loaded"""

    @staticmethod
    def create_users() -> List[User]:
        return [
            User("admin", "pass123", "Admin User", UserRole.ADMIN),
            User("attendant1", "pass123", "John Smith", UserRole.ATTENDANT),
        ]

    @staticmethod
    def create_slots(four_wheeler: int = 20, two_wheeler: int = 10) -> List[Slot]:
        slots = [Slot(f"A{i:02d}", VehicleType.FOUR_WHEELER) for i in range(1, four_wheeler + 1)]
        slots.extend(Slot(f"B{i:02d}", VehicleType.TWO_WHEELER) for i in range(1, two_wheeler + 1))
        return slots

    @staticmethod
    def create_ledger() -> List[LedgerEntry]:
        return []

    @classmethod
    def provider_for(cls, kind: str) -> Callable[[], list]:
        return {
            USERS: cls.create_users,
            SLOTS: cls.create_slots,
            LEDGER: cls.create_ledger,
        }[kind]


# ============================================================================
# COLLABORATORS
# ============================================================================

class SystemClock:
    """Clock backed by the local wall clock"""

    def now(self) -> datetime:
        return datetime.now()


class TicketNumberGenerator:
    """
    Ticket numbers of the form T<yymmddHHMMSS>-<6 hex>
    The random suffix keeps numbers unique within the same second
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()

    def new_ticket_id(self) -> str:
        timestamp = self.clock.now().strftime("%y%m%d%H%M%S")
        unique_id = uuid.uuid4().hex[:6].upper()
        return f"T{timestamp}-{unique_id}"


# ============================================================================
# STORAGE FACTORY
# ============================================================================

class StorageProviderFactory:
    """Creates the storage provider named by the configuration"""

    @staticmethod
    def create(config: CarParkConfig) -> StorageProvider:
        backend = config.storage_backend
        if backend == "csv":
            provider = CsvStorageProvider({
                USERS: config.path_for(USERS),
                SLOTS: config.path_for(SLOTS),
                LEDGER: config.path_for(LEDGER),
            })
        elif backend == "sqlite":
            config.data_dir.mkdir(parents=True, exist_ok=True)
            provider = SQLAlchemyStorageProvider(config.resolved_database_url())
        elif backend == "memory":
            provider = InMemoryStorageProvider()
        else:
            raise ValueError(f"Unknown storage backend: {backend}")

        logger.info(f"Storage: {provider.describe()}")
        return provider


# ============================================================================
# SERVICE FACTORY
# ============================================================================

class ParkingServiceFactory:
    """Wires storage, engine and strategies into a ParkingService"""

    @staticmethod
    def create(
        config: CarParkConfig,
        storage: Optional[StorageProvider] = None,
        clock: Optional[Clock] = None,
        id_generator: Optional[TicketIdGenerator] = None
    ):
        from ..application.parking_service import ParkingService

        clock = clock or SystemClock()
        engine = AllocationEngine(
            clock=clock,
            id_generator=id_generator or TicketNumberGenerator(clock),
            allocation_strategy=ParkingStrategyFactory.create_allocation_strategy(config.allocation_strategy),
        )
        service = ParkingService(
            storage=storage or StorageProviderFactory.create(config),
            engine=engine,
            rate_table=config.hourly_rates,
            clock=clock,
        )
        service.load()
        return service
