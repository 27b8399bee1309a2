# File: src/carpark/application/auth_service.py
"""
Operator authentication and role checks

One operator is logged in per session. Admins and attendants record
traffic; only admins open reports and admin functions. Security staff
can log in and see the dashboard only.
"""

from typing import Optional
import logging

from ..domain.aggregates import RecordStore
from ..domain.models import User
from ..domain.exceptions import AuthenticationError, PermissionDenied


class AuthService:
    """Tracks the logged-in operator for a console session"""

    def __init__(self, store_provider):
        # Callable returning the current RecordStore; the service may reload it
        self._store_provider = store_provider
        self._current_user: Optional[User] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def for_store(cls, store: RecordStore) -> 'AuthService':
        return cls(lambda: store)

    @property
    def current_user(self) -> Optional[User]:
        return self._current_user

    @property
    def is_logged_in(self) -> bool:
        return self._current_user is not None

    def login(self, username: str, password: str) -> User:
        """
        Authenticate an operator

        Raises:
            AuthenticationError: unknown user name or wrong password
        """
        user = self._store_provider().find_user(username, password)
        if user is None:
            self.logger.warning(f"Failed login attempt for '{(username or '').strip()}'")
            raise AuthenticationError("Invalid username or password.")

        self._current_user = user
        self.logger.info(f"User {user.username} logged in as {user.role}")
        return user

    def logout(self) -> None:
        if self._current_user is not None:
            self.logger.info(f"User {self._current_user.username} logged out")
        self._current_user = None

    def require_login(self) -> User:
        if self._current_user is None:
            raise PermissionDenied("Please log in first.")
        return self._current_user

    def require_traffic_access(self) -> User:
        """Raises PermissionDenied unless the operator may record entries and exits"""
        user = self.require_login()
        if not user.role.can_record_traffic:
            raise PermissionDenied(f"{user.role} users cannot record vehicle entry or exit.")
        return user

    def require_admin(self) -> User:
        """Raises PermissionDenied unless the operator is an admin"""
        user = self.require_login()
        if not user.role.can_administer:
            raise PermissionDenied("Access denied. Admin only.")
        return user
