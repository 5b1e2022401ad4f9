"""
Login lockout for user accounts.

An account is locked for a fixed window once it collects MAX_LOGIN_ATTEMPTS
consecutive failed logins. The lock is never stored as a flag: an account is
locked while ``now < locked_until`` and unlocks by itself afterwards. The
counters are only cleared by the next successful login.

``evaluate`` is the pure transition; ``LockoutGuard`` wires it to storage and
a clock.
"""
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Protocol

from security.errors import ConcurrentUpdateError, StorageError
from security.password import dummy_hash, verify_password
from utils.clock import utcnow

MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION = timedelta(hours=2)
SAVE_RETRIES = 3


@dataclass(frozen=True)
class Account:
    id: Optional[int]
    username: str
    credential_hash: str
    failed_attempts: int = 0
    locked_until: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    version: int = 0


class AuthOutcome(str, Enum):
    AUTHENTICATED = "authenticated"
    INVALID_CREDENTIAL = "invalid_credential"
    ACCOUNT_LOCKED = "account_locked"


@dataclass(frozen=True)
class AuthResult:
    outcome: AuthOutcome
    account: Optional[Account]
    locked_now: bool = False
    retry_after_seconds: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome is AuthOutcome.AUTHENTICATED


class AccountRepository(Protocol):
    def load(self, identifier: str) -> Optional[Account]:
        ...

    def save(self, account: Account) -> Account:
        """Persist ``account`` if its stored version still equals ``account.version``.

        Returns the account with its new version, raises ConcurrentUpdateError
        when the stored row moved on, StorageError on any other failure.
        """
        ...


def is_locked(account: Account, now: datetime) -> bool:
    return account.locked_until is not None and now < account.locked_until


def seconds_until_unlock(account: Account, now: datetime) -> int:
    if not is_locked(account, now):
        return 0
    return max(math.ceil((account.locked_until - now).total_seconds()), 1)


def evaluate(
    account: Account,
    supplied: str,
    now: datetime,
    verify: Callable[[str, str], bool] = verify_password,
    max_attempts: int = MAX_LOGIN_ATTEMPTS,
    lock_duration: timedelta = LOCK_DURATION,
) -> AuthResult:
    """Apply one login attempt to ``account`` and return the new state.

    A locked account is returned unchanged and the credential is not checked.
    """
    if is_locked(account, now):
        return AuthResult(
            AuthOutcome.ACCOUNT_LOCKED,
            account,
            retry_after_seconds=seconds_until_unlock(account, now),
        )

    if not verify(supplied, account.credential_hash):
        failed = account.failed_attempts + 1
        if failed >= max_attempts:
            locked = replace(account, failed_attempts=failed, locked_until=now + lock_duration)
            return AuthResult(
                AuthOutcome.INVALID_CREDENTIAL,
                locked,
                locked_now=True,
                retry_after_seconds=seconds_until_unlock(locked, now),
            )
        return AuthResult(AuthOutcome.INVALID_CREDENTIAL, replace(account, failed_attempts=failed))

    if account.failed_attempts > 0:
        updated = replace(account, failed_attempts=0, locked_until=None, last_success_at=now)
    else:
        updated = replace(account, last_success_at=now)
    return AuthResult(AuthOutcome.AUTHENTICATED, updated)


class LockoutGuard:
    def __init__(
        self,
        repository: AccountRepository,
        clock: Callable[[], datetime] = utcnow,
        verify: Callable[[str, str], bool] = verify_password,
        max_attempts: int = MAX_LOGIN_ATTEMPTS,
        lock_duration: timedelta = LOCK_DURATION,
        save_retries: int = SAVE_RETRIES,
    ):
        self.repository = repository
        self.clock = clock
        self.verify = verify
        self.max_attempts = max_attempts
        self.lock_duration = lock_duration
        self.save_retries = save_retries

    def authenticate(self, identifier: str, supplied: str) -> AuthResult:
        account = self.repository.load(identifier)
        if account is None:
            self.verify(supplied, dummy_hash())
            return AuthResult(AuthOutcome.INVALID_CREDENTIAL, None)

        # bcrypt is slow; a retry after a write conflict reuses the first answer
        checked = {}

        def verify_once(plain: str, hashed: str) -> bool:
            if hashed not in checked:
                checked[hashed] = self.verify(plain, hashed)
            return checked[hashed]

        for _ in range(self.save_retries + 1):
            result = evaluate(
                account,
                supplied,
                self.clock(),
                verify=verify_once,
                max_attempts=self.max_attempts,
                lock_duration=self.lock_duration,
            )
            if result.account == account:
                return result
            try:
                saved = self.repository.save(result.account)
            except ConcurrentUpdateError:
                account = self.repository.load(identifier)
                if account is None:
                    raise StorageError(f"Account {identifier!r} vanished during login")
                continue
            return replace(result, account=saved)

        raise StorageError(f"Gave up saving login state for {identifier!r} after {self.save_retries} retries")
