"""
auth.py - User directory: signup, login and session opening

Credentials and balances live in the store's user directory. Passwords are
kept as salted SHA-256 digests in the form ``sha256$<salt>$<hexdigest>``;
entries written before hashing was introduced (plain text) still log in.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Callable
import hashlib
import hmac
import os
import secrets

from .core import (
    Account, INITIAL_BALANCE,
    InvalidCredentials, InvalidInput, UserExists,
)
from .ledger import Ledger
from .simulator import PriceSimulator
from .storage import DurableStore, UserRecord, directory_lock


_HASH_SCHEME = "sha256"

# Usernames become file names in CsvFileStore and fields in users.csv
_FORBIDDEN_USERNAME_CHARS = {",", "/", "\\", os.sep}


def hash_password(password: str, salt: str = None) -> str:
    """Salted SHA-256 digest of a password."""
    salt = salt if salt is not None else secrets.token_hex(8)
    digest = hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()
    return f"{_HASH_SCHEME}${salt}${digest}"


def verify_password(password: str, stored: str) -> bool:
    """Constant-time check of a password against a stored digest or legacy plain value."""
    parts = stored.split("$")
    if len(parts) == 3 and parts[0] == _HASH_SCHEME:
        expected = hash_password(password, salt=parts[1])
    else:
        expected = password
    return hmac.compare_digest(expected.encode("utf-8"), stored.encode("utf-8"))


class UserDirectory:
    """
    Account creation and authentication against a durable store.

    Example:
        users = UserDirectory(store)
        users.signup("alice", "s3cret")
        ledger = users.open_session("alice", "s3cret", simulator)
    """

    def __init__(self, store: DurableStore, initial_balance: Decimal = INITIAL_BALANCE):
        self.store = store
        self.initial_balance = initial_balance

    def signup(self, username: str, password: str) -> Account:
        """
        Create an account funded with the initial balance.

        Raises:
            InvalidInput: blank username or password, or a username that
                          contains whitespace, a comma or a path separator
            UserExists: username already taken
        """
        if not username or not username.strip() or not password:
            raise InvalidInput("Username and password are required")
        if any(ch.isspace() or ch in _FORBIDDEN_USERNAME_CHARS for ch in username):
            raise InvalidInput(f"Username {username!r} contains forbidden characters")
        with directory_lock(self.store):
            directory = self.store.load_user_directory()
            if username in directory:
                raise UserExists(f"User {username} already exists")
            directory[username] = UserRecord(hash_password(password), self.initial_balance)
            self.store.save_user_directory(directory)
        return Account(username, self.initial_balance)

    def login(self, username: str, password: str) -> Account:
        """
        Authenticate and return the account with its persisted balance.

        Raises:
            InvalidCredentials: unknown user or wrong password
        """
        entry = self.store.load_user_directory().get(username)
        if entry is None or not verify_password(password, entry.password_hash):
            raise InvalidCredentials("Invalid username or password")
        return Account(username, entry.balance)

    def open_session(
        self,
        username: str,
        password: str,
        simulator: PriceSimulator,
        verbose: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ) -> Ledger:
        """Log in and load the user's holdings and trade history."""
        account = self.login(username, password)
        return Ledger.load(account, simulator, self.store, verbose=verbose, clock=clock)

    def __contains__(self, username: str) -> bool:
        return username in self.store.load_user_directory()
