# File: src/carpark/presentation/console.py
"""
Car Park Ledger Console

Menu-driven front end for gate operators.

Key Features:
1. Operator login/logout with role-based menus
2. Vehicle entry with ticket print-out
3. Vehicle exit with bill print-out and y/n confirmation
4. Reports (currently parked, daily income) for admins
5. Slot administration and user listing for admins

Architecture:
- The console only collects input and prints results; every rule lives in
  ParkingService and AuthService
- Input, output and password functions are injectable so a scripted
  session can drive the whole menu tree
"""

from typing import Callable, Dict, List, Optional
from datetime import date
from decimal import Decimal
import getpass
import logging

from ..application.parking_service import ParkingService
from ..application.auth_service import AuthService
from ..application.dtos import BillQuoteDTO, OperationResultDTO
from ..domain.models import VehicleType
from ..domain.exceptions import CarParkError, InvalidCategory, PermissionDenied


# ============================================================================
# CONSTANTS
# ============================================================================

CATEGORY_CHOICES: Dict[str, VehicleType] = {
    "1": VehicleType.FOUR_WHEELER,
    "2": VehicleType.TWO_WHEELER,
    "3": VehicleType.EV,
    "4": VehicleType.VIP,
}

CATEGORY_PROMPT = "Select Vehicle Type (1 for 4-Wheeler, 2 for 2-Wheeler, 3 for EV, 4 for VIP): "

RULE = "=" * 55
LINE = "-" * 20


def parse_category_choice(choice: str) -> VehicleType:
    """Map a menu selection to a category; anything else is InvalidCategory"""
    try:
        return CATEGORY_CHOICES[(choice or "").strip()]
    except KeyError:
        raise InvalidCategory("Invalid vehicle type selected.")


class ExitRequested(Exception):
    """Raised inside the menu loop when the operator chooses Save & Exit"""
    pass


# ============================================================================
# CONSOLE APPLICATION
# ============================================================================

class ConsoleApp:
    """
    Interactive console session

    Args:
        service: Session orchestrator
        auth: Login state and role checks
        input_func: Reads one line of operator input
        output_func: Prints one line
        password_func: Reads a password without echo
        currency_symbol: Prefix for money amounts
    """

    def __init__(
        self,
        service: ParkingService,
        auth: Optional[AuthService] = None,
        input_func: Callable[[str], str] = input,
        output_func: Callable[[str], None] = print,
        password_func: Callable[[str], str] = getpass.getpass,
        currency_symbol: str = "$"
    ):
        self.service = service
        self.auth = auth or AuthService(lambda: service.store)
        self.input = input_func
        self.output = output_func
        self.read_password = password_func
        self.currency_symbol = currency_symbol
        self.logger = logging.getLogger(self.__class__.__name__)

    # ========================================================================
    # MAIN LOOP
    # ========================================================================

    def run(self) -> int:
        """Run until Save & Exit or end of input; returns a process exit code"""
        self.logger.info("Console session started")
        for warning in self.service.load_warnings:
            self._error(warning)

        try:
            while True:
                if not self.auth.is_logged_in:
                    self.login()
                    continue
                self.main_menu()
        except ExitRequested:
            return 0
        except (EOFError, KeyboardInterrupt):
            self.output("")
            self.logger.info("Input closed, saving before exit")
            self._save_all()
            return 0
        finally:
            self.logger.info("Console session ended")

    def login(self) -> None:
        self._header("System Login")
        username = self.input("Enter Username: ")
        password = self.read_password("Enter Password: ")
        try:
            user = self.auth.login(username, password)
        except CarParkError as e:
            self._error(str(e))
            return
        self.output(f"Welcome, {user.full_name} ({user.role})!")

    def main_menu(self) -> None:
        user = self.auth.require_login()
        self._header(f"Main Dashboard | Welcome, {user.full_name}")
        self.show_availability()

        menu: Dict[str, str] = {}
        if user.role.can_record_traffic:
            menu["1"] = "Vehicle Entry"
            menu["2"] = "Vehicle Exit & Billing"
        if user.role.can_administer:
            menu["3"] = "System Reports"
            menu["4"] = "Admin Functions"
        menu["9"] = "Logout"
        menu["0"] = "Save & Exit"
        self._menu("Main Menu", menu)

        actions: Dict[str, Callable[[], None]] = {
            "1": self.vehicle_entry,
            "2": self.vehicle_exit,
            "3": self.reports_menu,
            "4": self.admin_menu,
            "9": self.logout,
            "0": self.save_and_exit,
        }
        choice = self.input("Enter your choice: ").strip()
        action = actions.get(choice)
        if action is None:
            self._error("Invalid choice. Please try again.")
            return
        self._dispatch(action)

    def _dispatch(self, action: Callable[[], None]) -> None:
        """Run one menu action; expected failures are printed, unexpected ones logged"""
        try:
            action()
        except (ExitRequested, EOFError, KeyboardInterrupt):
            raise
        except PermissionDenied as e:
            self._error(str(e))
        except CarParkError as e:
            self._error(f"Error: {e}")
        except Exception as e:
            self.logger.error(f"Unexpected error: {str(e)}", exc_info=True)
            self._error(f"Unexpected error: {e}")

    def logout(self) -> None:
        self.output("Logging out...")
        self.auth.logout()

    def save_and_exit(self) -> None:
        self._save_all()
        raise ExitRequested()

    def _save_all(self) -> None:
        warnings = self.service.save_all()
        if warnings:
            for warning in warnings:
                self._error(warning)
        else:
            self.output("All data saved. Exiting application.")

    # ========================================================================
    # DASHBOARD
    # ========================================================================

    def show_availability(self) -> None:
        self.output("--- Parking Availability ---")
        for line in self.service.availability_summary():
            self.output(f"{line.category}: {line.free} Free / {line.total} Total")
        self.output("----------------------------")

    # ========================================================================
    # VEHICLE ENTRY / EXIT
    # ========================================================================

    def vehicle_entry(self) -> None:
        self.auth.require_traffic_access()
        self._header("New Vehicle Entry")

        vehicle_id = self.input("Enter Vehicle Number: ").strip().upper()
        if not vehicle_id:
            self._error("Error: Vehicle Number cannot be empty.")
            return
        if self.service.store.find_open_entry(vehicle_id) is not None:
            self._error("Error: This vehicle is already parked.")
            return
        owner_name = self.input("Enter Owner's Name: ")
        category = parse_category_choice(self.input(CATEGORY_PROMPT))

        ticket = self.service.enter_vehicle(vehicle_id, owner_name, category)
        if not ticket.success:
            self._error(f"Error: {ticket.message}")
            return

        self.output("--- Entry Ticket ---")
        self.output(f"Ticket Number: {ticket.ticket_id}")
        self.output(f"Owner: {ticket.owner_name}")
        self.output(f"Vehicle Number: {ticket.vehicle_id}")
        self.output(f"Vehicle Type: {ticket.category}")
        self.output(f"Slot Number: {ticket.slot_id}")
        self.output(f"Entry Time: {ticket.entry_time:%Y-%m-%d %H:%M:%S}")
        self.output(LINE)
        self._storage_warning(ticket)

    def vehicle_exit(self) -> None:
        self.auth.require_traffic_access()
        self._header("Vehicle Exit & Billing")

        vehicle_id = self.input("Enter Vehicle Number to exit: ")
        receipt = self.service.exit_vehicle(vehicle_id, self.confirm_bill)

        if receipt.cancelled:
            self.output("Exit cancelled.")
        elif receipt.success:
            self.output(receipt.message)
            self._storage_warning(receipt)
        else:
            self._error(f"Error: {receipt.message}")

    def confirm_bill(self, quote: BillQuoteDTO) -> bool:
        """Print the bill and ask the operator to confirm payment"""
        hours, minutes = quote.duration_hours_minutes
        self.output("--- Parking Bill ---")
        self.output(f"Vehicle Number: {quote.vehicle_id}")
        self.output(f"Owner: {quote.owner_name}")
        self.output(f"Entry Time: {quote.entry_time:%Y-%m-%d %H:%M}")
        self.output(f"Exit Time:  {quote.exit_time:%Y-%m-%d %H:%M}")
        self.output(f"Duration:   {hours} hours, {minutes} minutes")
        self.output(f"Billed Hours: {quote.billed_hours}")
        self.output(f"Hourly Rate: {self._money(quote.hourly_rate)}")
        self.output(LINE)
        self.output(f"Total Fee:  {self._money(quote.fee)}")
        self.output(LINE)
        answer = self.input("Confirm payment and exit? (y/n): ")
        return answer.strip().lower() == "y"

    # ========================================================================
    # REPORTS
    # ========================================================================

    def reports_menu(self) -> None:
        self.auth.require_admin()
        self._submenu(
            "System Reports",
            {
                "1": ("View Currently Parked Vehicles", self.show_currently_parked),
                "2": ("View Daily Income Report", self.show_daily_income),
            }
        )

    def show_currently_parked(self) -> None:
        self._header("Currently Parked Vehicles")
        parked = self.service.currently_parked()
        if not parked:
            self.output("The parking lot is currently empty.")
            return
        self.output(f"{'Slot':<10}{'Vehicle No.':<15}{'Owner':<20}{'Entry Time':<20}")
        self.output("-" * 65)
        for row in parked:
            self.output(
                f"{row.slot_id:<10}{row.vehicle_id:<15}{row.owner_name:<20}"
                f"{row.entry_time:%Y-%m-%d %H:%M}"
            )

    def show_daily_income(self, day: Optional[date] = None) -> None:
        self._header("Daily Income Report")
        report = self.service.daily_income(day)
        if not report.vehicles_exited:
            self.output(f"No vehicles have exited and paid today ({report.day:%Y-%m-%d}).")
            return
        self.output(f"Total Vehicles Exited Today: {report.vehicles_exited}")
        self.output(f"Total Income for {report.day:%Y-%m-%d}: {self._money(report.total_income)}")
        self.output("--- Individual Records ---")
        for line in report.lines:
            self.output(f"- {line.vehicle_id} ({line.exit_time:%H:%M:%S}): {self._money(line.fee)}")

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def admin_menu(self) -> None:
        self.auth.require_admin()
        self._submenu(
            "Admin Functions",
            {
                "1": ("Manage Parking Slots", self.manage_slots),
                "2": ("Manage Users", self.show_users),
            }
        )

    def manage_slots(self) -> None:
        self._header("Manage Parking Slots")
        self.output("Current Slots:")
        for slot in self.service.list_slots():
            occupied = " [occupied]" if self.service.store.is_occupied(slot.slot_id) else ""
            self.output(f"- {slot.slot_id} ({slot.category}){occupied}")

        self.output("Options: [a]dd / [r]emove / [b]ack")
        option = self.input("Choose an option: ").strip().lower()
        if option == "a":
            slot_id = self.input("Enter new slot number (e.g., C01): ")
            category = parse_category_choice(self.input(CATEGORY_PROMPT.replace("Vehicle Type", "slot type")))
            self._slot_result(self.service.add_slot(slot_id, category))
        elif option == "r":
            slot_id = self.input("Enter slot number to remove: ")
            self._slot_result(self.service.remove_slot(slot_id))
        elif option != "b":
            self._error("Invalid choice.")

    def show_users(self) -> None:
        self._header("Manage Users")
        self.output("Current Users:")
        for user in self.service.list_users():
            self.output(f"- {user.username} ({user.role})")

    def _slot_result(self, result: OperationResultDTO) -> None:
        if result.success:
            self.output(result.message)
            self._storage_warning(result)
        else:
            self._error(result.message)

    # ========================================================================
    # OUTPUT HELPERS
    # ========================================================================

    def _submenu(self, title: str, items: Dict[str, tuple]) -> None:
        """Loop over a sub-menu until the operator picks 9 (back)"""
        while True:
            menu = {key: label for key, (label, _) in items.items()}
            menu["9"] = "Back to Main Menu"
            self._menu(title, menu)
            choice = self.input("Enter your choice: ").strip()
            if choice == "9":
                return
            if choice not in items:
                self._error("Invalid choice.")
                continue
            self._dispatch(items[choice][1])

    def _header(self, title: str) -> None:
        self.output(RULE)
        self.output(f"  {title}")
        self.output(RULE)

    def _menu(self, title: str, items: Dict[str, str]) -> None:
        lines: List[str] = [f"--- {title} ---"]
        lines.extend(f"{key}. {label}" for key, label in items.items())
        lines.append("-" * 33)
        for line in lines:
            self.output(line)

    def _error(self, message: str) -> None:
        self.output(message)

    def _storage_warning(self, result: OperationResultDTO) -> None:
        if result.storage_warning:
            self._error(f"Warning: {result.storage_warning}")

    def _money(self, amount: Decimal) -> str:
        return f"{self.currency_symbol}{amount:.2f}"
