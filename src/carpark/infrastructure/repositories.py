# File: src/carpark/infrastructure/repositories.py
"""
Storage Providers for the Car Park Ledger

A storage provider persists flat records of three kinds:

    users   -> Username, Password, FullName, Role
    slots   -> SlotNumber, Type
    ledger  -> TicketNumber, VehicleNumber, OwnerName, Type,
               AllocatedSlotNumber, EntryTime, ExitTime, TotalFee

Records are dictionaries of strings keyed by those column names. The record
codecs in this module turn them into domain objects and back, so every
backend shares one wire format.

Storage Implementations:
- CsvStorageProvider - One CSV file per kind, rewritten on every save (default)
- SQLAlchemyStorageProvider - One table per kind in a relational database
- InMemoryStorageProvider - For testing and dry runs
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Callable, Tuple
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
import copy
import csv
import logging
import os
import re
import shutil
import tempfile

from sqlalchemy import create_engine, Column, Integer, String, delete, select
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.exc import SQLAlchemyError

from ..domain.models import User, Slot, LedgerEntry, VehicleType, UserRole
from ..domain.exceptions import (
    CarParkError, StorageError, RecordsNotFound, CorruptRecordError
)


Record = Dict[str, str]

USERS = "users"
SLOTS = "slots"
LEDGER = "ledger"

COLUMNS: Dict[str, Tuple[str, ...]] = {
    USERS: ("Username", "Password", "FullName", "Role"),
    SLOTS: ("SlotNumber", "Type"),
    LEDGER: (
        "TicketNumber", "VehicleNumber", "OwnerName", "Type",
        "AllocatedSlotNumber", "EntryTime", "ExitTime", "TotalFee"
    ),
}


def _check_kind(kind: str) -> Tuple[str, ...]:
    try:
        return COLUMNS[kind]
    except KeyError:
        raise StorageError(f"Unknown record kind: {kind!r}", kind=kind)


# ============================================================================
# RECORD CODECS
# ============================================================================

def encode_user(user: User) -> Record:
    return {
        "Username": user.username,
        "Password": user.password,
        "FullName": user.full_name,
        "Role": str(user.role.code),
    }


def encode_slot(slot: Slot) -> Record:
    return {
        "SlotNumber": slot.slot_id,
        "Type": str(slot.category.code),
    }


def encode_entry(entry: LedgerEntry) -> Record:
    return {
        "TicketNumber": entry.ticket_id,
        "VehicleNumber": entry.vehicle_id,
        "OwnerName": entry.owner_name,
        "Type": str(entry.category.code),
        "AllocatedSlotNumber": entry.slot_id,
        "EntryTime": entry.entry_time.isoformat(),
        "ExitTime": entry.exit_time.isoformat() if entry.exit_time else "",
        "TotalFee": str(entry.fee) if entry.fee is not None else "",
    }


def _field(record: Record, name: str, kind: str) -> str:
    value = record.get(name)
    if value is None:
        raise CorruptRecordError(f"{kind} record is missing column {name}: {record}", kind=kind)
    return value.strip()


# Fractions of any length; older interpreters only parse 3 or 6 digits
_FRACTION = re.compile(r"\.(\d+)")


def _parse_timestamp(text: str, kind: str) -> datetime:
    """
    Parse an ISO 8601 timestamp into naive local time
    Offset-aware values (e.g. 2024-03-01T08:00:00.1234567+05:30) are
    converted to the local zone so they compare with the system clock
    """
    normalized = _FRACTION.sub(lambda match: "." + (match.group(1) + "000000")[:6], text, count=1)
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(normalized)
    except ValueError:
        raise CorruptRecordError(f"Invalid timestamp in {kind} record: {text!r}", kind=kind)
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


def _parse_fee(text: str, kind: str) -> Decimal:
    try:
        return Decimal(text)
    except InvalidOperation:
        raise CorruptRecordError(f"Invalid fee in {kind} record: {text!r}", kind=kind)


def decode_user(record: Record) -> User:
    try:
        return User(
            username=_field(record, "Username", USERS),
            password=record.get("Password") or "",
            full_name=_field(record, "FullName", USERS),
            role=UserRole.from_code(_field(record, "Role", USERS)),
        )
    except CorruptRecordError:
        raise
    except CarParkError as e:
        raise CorruptRecordError(f"Invalid user record {record}: {e}", kind=USERS)


def decode_slot(record: Record) -> Slot:
    try:
        return Slot(
            slot_id=_field(record, "SlotNumber", SLOTS),
            category=VehicleType.from_code(_field(record, "Type", SLOTS)),
        )
    except CorruptRecordError:
        raise
    except CarParkError as e:
        raise CorruptRecordError(f"Invalid slot record {record}: {e}", kind=SLOTS)


def decode_entry(record: Record) -> LedgerEntry:
    exit_text = _field(record, "ExitTime", LEDGER)
    fee_text = _field(record, "TotalFee", LEDGER)
    try:
        return LedgerEntry(
            ticket_id=_field(record, "TicketNumber", LEDGER),
            vehicle_id=_field(record, "VehicleNumber", LEDGER),
            owner_name=_field(record, "OwnerName", LEDGER),
            category=VehicleType.from_code(_field(record, "Type", LEDGER)),
            slot_id=_field(record, "AllocatedSlotNumber", LEDGER),
            entry_time=_parse_timestamp(_field(record, "EntryTime", LEDGER), LEDGER),
            exit_time=_parse_timestamp(exit_text, LEDGER) if exit_text else None,
            fee=_parse_fee(fee_text, LEDGER) if fee_text else None,
        )
    except CorruptRecordError:
        raise
    except CarParkError as e:
        raise CorruptRecordError(f"Invalid ledger record {record}: {e}", kind=LEDGER)


ENCODERS: Dict[str, Callable] = {USERS: encode_user, SLOTS: encode_slot, LEDGER: encode_entry}
DECODERS: Dict[str, Callable] = {USERS: decode_user, SLOTS: decode_slot, LEDGER: decode_entry}


# ============================================================================
# STORAGE PROVIDER INTERFACE
# ============================================================================

class StorageProvider(ABC):
    """Durable load/save of flat records by kind"""

    def __init__(self):
        self._logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def load(self, kind: str) -> List[Record]:
        """
        Load all records of a kind
        Raises: RecordsNotFound if nothing was ever saved, StorageError on I/O failure
        """
        pass

    @abstractmethod
    def save(self, kind: str, records: List[Record]) -> None:
        """
        Replace all records of a kind
        Raises: StorageError on I/O failure
        """
        pass

    def backup_corrupt(self, kind: str) -> Optional[str]:
        """
        Copy the unreadable records of a kind aside before they are overwritten
        Returns: where the copy went, or None when the backend keeps no copy
        """
        return None

    def describe(self) -> str:
        return self.__class__.__name__


# ============================================================================
# CSV FLAT FILES
# ============================================================================

class CsvStorageProvider(StorageProvider):
    """
    One CSV file per record kind with a header line

    Rows are read by position, so files written by older versions with
    different header spellings still load. Blank lines and rows with an
    empty first column are skipped.
    """

    def __init__(self, paths: Dict[str, Path]):
        super().__init__()
        self.paths = {kind: Path(path) for kind, path in paths.items()}

    @classmethod
    def in_directory(cls, data_dir: Path, file_names: Optional[Dict[str, str]] = None) -> 'CsvStorageProvider':
        names = {USERS: "users.csv", SLOTS: "slots.csv", LEDGER: "parking_ledger.csv"}
        names.update(file_names or {})
        return cls({kind: Path(data_dir) / name for kind, name in names.items()})

    def _path(self, kind: str) -> Path:
        _check_kind(kind)
        try:
            return self.paths[kind]
        except KeyError:
            raise StorageError(f"No file configured for {kind}", kind=kind)

    def load(self, kind: str) -> List[Record]:
        columns = _check_kind(kind)
        path = self._path(kind)
        if not path.exists():
            raise RecordsNotFound(f"{path} does not exist", kind=kind)

        records: List[Record] = []
        try:
            with path.open("r", newline="", encoding="utf-8") as handle:
                reader = csv.reader(handle)
                next(reader, None)  # header
                for line_number, row in enumerate(reader, start=2):
                    if not row or not row[0].strip():
                        continue
                    if len(row) != len(columns):
                        raise CorruptRecordError(
                            f"{path}:{line_number}: expected {len(columns)} columns, got {len(row)}",
                            kind=kind
                        )
                    records.append(dict(zip(columns, row)))
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise StorageError(f"Error loading {path}: {e}", kind=kind)

        self._logger.debug(f"Loaded {len(records)} {kind} records from {path}")
        return records

    def save(self, kind: str, records: List[Record]) -> None:
        columns = _check_kind(kind)
        path = self._path(kind)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a sibling temp file and swap it in so a failed write keeps the old file
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
            try:
                with os.fdopen(fd, "w", newline="", encoding="utf-8") as handle:
                    writer = csv.writer(handle)
                    writer.writerow(columns)
                    for record in records:
                        writer.writerow([record.get(column, "") for column in columns])
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, csv.Error) as e:
            raise StorageError(f"Error saving {path}: {e}", kind=kind)

        self._logger.debug(f"Saved {len(records)} {kind} records to {path}")

    def backup_corrupt(self, kind: str) -> Optional[str]:
        path = self._path(kind)
        if not path.exists():
            return None
        backup = path.with_name(path.name + ".corrupt")
        try:
            shutil.copy2(path, backup)
        except OSError as e:
            raise StorageError(f"Error backing up {path}: {e}", kind=kind)
        self._logger.warning(f"Copied unreadable {kind} file to {backup}")
        return str(backup)

    def describe(self) -> str:
        directories = sorted({str(path.parent) for path in self.paths.values()})
        return f"CSV files in {', '.join(directories)}"


# ============================================================================
# SQLALCHEMY ORM MODELS
# ============================================================================

Base = declarative_base()


class UserModel(Base):
    """SQLAlchemy model for users"""
    __tablename__ = 'users'

    position = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, unique=True)
    password = Column(String(200), nullable=False, default="")
    full_name = Column(String(200), nullable=False)
    role = Column(String(4), nullable=False)


class SlotModel(Base):
    """SQLAlchemy model for slots; position keeps registration order"""
    __tablename__ = 'slots'

    position = Column(Integer, primary_key=True)
    slot_number = Column(String(20), nullable=False, unique=True)
    type = Column(String(4), nullable=False)


class LedgerEntryModel(Base):
    """SQLAlchemy model for ledger entries"""
    __tablename__ = 'parking_ledger'

    position = Column(Integer, primary_key=True)
    ticket_number = Column(String(40), nullable=False, unique=True, index=True)
    vehicle_number = Column(String(40), nullable=False, index=True)
    owner_name = Column(String(200), nullable=False, default="")
    type = Column(String(4), nullable=False)
    allocated_slot_number = Column(String(20), nullable=False)
    entry_time = Column(String(40), nullable=False)
    exit_time = Column(String(40), nullable=False, default="")
    total_fee = Column(String(40), nullable=False, default="")


class SavedKindModel(Base):
    """One row per record kind that has been saved at least once"""
    __tablename__ = 'saved_kinds'

    kind = Column(String(20), primary_key=True)


# (model, [(record column, model attribute), ...]) per kind
ORM_MAPPINGS = {
    USERS: (UserModel, [
        ("Username", "username"), ("Password", "password"),
        ("FullName", "full_name"), ("Role", "role"),
    ]),
    SLOTS: (SlotModel, [
        ("SlotNumber", "slot_number"), ("Type", "type"),
    ]),
    LEDGER: (LedgerEntryModel, [
        ("TicketNumber", "ticket_number"), ("VehicleNumber", "vehicle_number"),
        ("OwnerName", "owner_name"), ("Type", "type"),
        ("AllocatedSlotNumber", "allocated_slot_number"), ("EntryTime", "entry_time"),
        ("ExitTime", "exit_time"), ("TotalFee", "total_fee"),
    ]),
}


class SQLAlchemyStorageProvider(StorageProvider):
    """
    Relational storage with one table per record kind

    Saves replace the table contents and mark the kind in saved_kinds
    inside a single transaction. A kind counts as never saved only while
    it is unmarked and its table is empty, so a saved empty list loads
    back as empty.
    """

    def __init__(self, database_url: str = "sqlite:///carpark.sqlite3", **engine_kwargs):
        super().__init__()
        self.database_url = database_url
        try:
            self.engine = create_engine(database_url, **engine_kwargs)
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot open database {database_url}: {e}")
        self.session_factory = sessionmaker(bind=self.engine)

    def load(self, kind: str) -> List[Record]:
        _check_kind(kind)
        model_class, mapping = ORM_MAPPINGS[kind]
        try:
            with self.session_factory() as session:
                rows = session.scalars(select(model_class).order_by(model_class.position)).all()
                records = [
                    {column: getattr(row, attribute) or "" for column, attribute in mapping}
                    for row in rows
                ]
                saved = session.get(SavedKindModel, kind) is not None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error loading {kind}: {e}")
            raise StorageError(f"Error loading {kind} from database: {e}", kind=kind)

        if not records and not saved:
            raise RecordsNotFound(f"No {kind} rows in {self.database_url}", kind=kind)
        return records

    def save(self, kind: str, records: List[Record]) -> None:
        _check_kind(kind)
        model_class, mapping = ORM_MAPPINGS[kind]
        try:
            with self.session_factory.begin() as session:
                session.execute(delete(model_class))
                session.add_all([
                    model_class(
                        position=position,
                        **{attribute: record.get(column, "") for column, attribute in mapping}
                    )
                    for position, record in enumerate(records)
                ])
                session.merge(SavedKindModel(kind=kind))
        except SQLAlchemyError as e:
            self._logger.error(f"Database error saving {kind}: {e}")
            raise StorageError(f"Error saving {kind} to database: {e}", kind=kind)

        self._logger.debug(f"Saved {len(records)} {kind} rows")

    def backup_corrupt(self, kind: str) -> Optional[str]:
        """Copy the whole database file; in-memory and server databases keep no copy"""
        database = self.engine.url.database
        if self.engine.url.get_backend_name() != "sqlite" or not database or database == ":memory:":
            return None
        path = Path(database)
        if not path.exists():
            return None
        backup = path.with_name(path.name + ".corrupt")
        try:
            shutil.copy2(path, backup)
        except OSError as e:
            raise StorageError(f"Error backing up {path}: {e}", kind=kind)
        self._logger.warning(f"Copied database with unreadable {kind} rows to {backup}")
        return str(backup)

    def describe(self) -> str:
        return f"database {self.engine.url.render_as_string(hide_password=True)}"


# ============================================================================
# IN-MEMORY STORAGE
# ============================================================================

class InMemoryStorageProvider(StorageProvider):
    """In-memory storage for testing"""

    def __init__(self, initial: Optional[Dict[str, List[Record]]] = None):
        super().__init__()
        self._storage: Dict[str, List[Record]] = copy.deepcopy(initial or {})
        self.save_count = 0

    def load(self, kind: str) -> List[Record]:
        _check_kind(kind)
        if kind not in self._storage:
            raise RecordsNotFound(f"No {kind} records saved", kind=kind)
        return copy.deepcopy(self._storage[kind])

    def save(self, kind: str, records: List[Record]) -> None:
        _check_kind(kind)
        self._storage[kind] = copy.deepcopy(list(records))
        self.save_count += 1

    def clear(self):
        """Clear all data (for testing)"""
        self._storage.clear()
