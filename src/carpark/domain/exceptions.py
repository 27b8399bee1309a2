# File: src/carpark/domain/exceptions.py
"""
Exception hierarchy for the car park ledger.

Expected, operator-recoverable failures (bad input, duplicate vehicle,
full car park, unknown vehicle) derive from CarParkError and are caught
at the service/console boundary. StorageError marks I/O failures and
corrupt persisted data.
"""


class CarParkError(Exception):
    """Base exception for all car park errors"""
    pass


# ============================================================================
# VALIDATION ERRORS
# ============================================================================

class ValidationError(CarParkError):
    """Empty or malformed input"""
    pass


class InvalidCategory(ValidationError):
    """Vehicle category selection or code outside the known set"""
    pass


class InvalidRole(ValidationError):
    """Operator role code outside the known set"""
    pass


class DuplicateSlot(ValidationError):
    """A slot with the same identifier is already registered"""
    pass


class SlotOccupied(ValidationError):
    """Slot is referenced by an open ledger entry"""
    pass


class EntryClosedError(ValidationError):
    """Ledger entry already has an exit time and cannot be billed or closed again"""
    pass


# ============================================================================
# ALLOCATION ERRORS
# ============================================================================

class DuplicateVehicle(CarParkError):
    """Vehicle already has an open ledger entry"""

    def __init__(self, vehicle_id: str):
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle {vehicle_id} is already parked")


class NoFreeSlot(CarParkError):
    """No free slot of the requested category"""

    def __init__(self, category):
        self.category = category
        super().__init__(f"No free slots available for {category}")


class VehicleNotFound(CarParkError):
    """No open ledger entry for the vehicle"""

    def __init__(self, vehicle_id: str):
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle {vehicle_id} not found in the parking lot")


# ============================================================================
# ACCESS ERRORS
# ============================================================================

class AuthenticationError(CarParkError):
    """Invalid username or password"""
    pass


class PermissionDenied(CarParkError):
    """Operator role does not allow the requested action"""
    pass


# ============================================================================
# INFRASTRUCTURE ERRORS
# ============================================================================

class StorageError(CarParkError):
    """I/O failure while loading or saving records"""

    def __init__(self, message: str, kind: str = ""):
        self.kind = kind
        super().__init__(message)


class RecordsNotFound(StorageError):
    """No persisted records of this kind exist yet"""
    pass


class CorruptRecordError(StorageError):
    """Persisted record cannot be decoded (unknown code, bad timestamp or fee)"""
    pass


class ConfigError(CarParkError):
    """Invalid configuration file"""
    pass
