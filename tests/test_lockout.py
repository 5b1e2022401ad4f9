"""Tests for the login lockout state machine."""
import hmac
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from security.errors import ConcurrentUpdateError, StorageError
from security.lockout import (
    Account, AuthOutcome, LockoutGuard, evaluate, is_locked, seconds_until_unlock,
)

SECRET = "s3cret-Pass"
T0 = datetime(2026, 3, 1, 9, 0, 0)


def plain_verify(plain, hashed):
    return hmac.compare_digest(plain, hashed)


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now


class InMemoryAccounts:
    def __init__(self, *accounts):
        self.rows = {a.username: a for a in accounts}
        self.saves = 0

    def load(self, identifier):
        return self.rows.get(identifier)

    def save(self, account):
        if self.rows[account.username].version != account.version:
            raise ConcurrentUpdateError(account.username)
        saved = replace(account, version=account.version + 1)
        self.rows[account.username] = saved
        self.saves += 1
        return saved


class CountingVerify:
    def __init__(self):
        self.calls = 0

    def __call__(self, plain, hashed):
        self.calls += 1
        return plain_verify(plain, hashed)


def make_account(**kwargs):
    fields = {"id": 1, "username": "alice", "credential_hash": SECRET}
    fields.update(kwargs)
    return Account(**fields)


def make_guard(repo, clock=None, verify=plain_verify, **kwargs):
    return LockoutGuard(repo, clock=clock or FakeClock(), verify=verify, **kwargs)


# ---------- pure transition ----------

def test_is_locked_is_derived_from_locked_until():
    account = make_account(locked_until=T0 + timedelta(seconds=10))
    assert is_locked(account, T0)
    assert not is_locked(account, T0 + timedelta(seconds=10))
    assert not is_locked(make_account(), T0)


def test_seconds_until_unlock_rounds_up():
    account = make_account(locked_until=T0 + timedelta(seconds=1, milliseconds=200))
    assert seconds_until_unlock(account, T0) == 2
    assert seconds_until_unlock(account, T0 + timedelta(seconds=5)) == 0


@pytest.mark.parametrize("failed", [0, 1, 2, 3])
def test_failure_below_threshold_increments_by_one(failed):
    account = make_account(failed_attempts=failed)
    result = evaluate(account, "wrong", T0, verify=plain_verify)

    assert result.outcome is AuthOutcome.INVALID_CREDENTIAL
    assert result.account.failed_attempts == failed + 1
    assert result.account.locked_until is None
    assert result.locked_now is False


def test_fifth_failure_locks_for_two_hours():
    result = evaluate(make_account(failed_attempts=4), "wrong", T0, verify=plain_verify)

    assert result.outcome is AuthOutcome.INVALID_CREDENTIAL
    assert result.locked_now is True
    assert result.account.failed_attempts == 5
    assert result.account.locked_until == T0 + timedelta(seconds=7200)
    assert result.retry_after_seconds == 7200
    assert is_locked(result.account, T0)


def test_locked_account_is_rejected_without_checking_credential():
    verify = CountingVerify()
    account = make_account(failed_attempts=5, locked_until=T0 + timedelta(hours=1))

    result = evaluate(account, SECRET, T0, verify=verify)

    assert result.outcome is AuthOutcome.ACCOUNT_LOCKED
    assert result.account is account
    assert verify.calls == 0
    assert result.retry_after_seconds == 3600


def test_success_after_failures_resets_counters():
    account = make_account(failed_attempts=3)
    result = evaluate(account, SECRET, T0, verify=plain_verify)

    assert result.ok
    assert result.account.failed_attempts == 0
    assert result.account.locked_until is None
    assert result.account.last_success_at == T0


def test_success_with_clean_record_only_touches_last_success():
    account = make_account(last_success_at=T0 - timedelta(days=1))
    result = evaluate(account, SECRET, T0, verify=plain_verify)

    assert result.ok
    assert result.account == replace(account, last_success_at=T0)


def test_failure_after_lock_expiry_relocks_immediately():
    # counters survive an expired lock until the next success
    account = make_account(failed_attempts=5, locked_until=T0 - timedelta(seconds=1))
    result = evaluate(account, "wrong", T0, verify=plain_verify)

    assert result.account.failed_attempts == 6
    assert result.locked_now is True
    assert result.account.locked_until == T0 + timedelta(hours=2)


def test_custom_threshold_and_duration():
    result = evaluate(
        make_account(failed_attempts=1), "wrong", T0,
        verify=plain_verify, max_attempts=2, lock_duration=timedelta(minutes=1),
    )
    assert result.locked_now is True
    assert result.account.locked_until == T0 + timedelta(minutes=1)


# ---------- guard with storage ----------

def test_concrete_lockout_scenario():
    repo = InMemoryAccounts(make_account())
    clock = FakeClock()
    guard = make_guard(repo, clock)

    for expected in (1, 2, 3, 4):
        result = guard.authenticate("alice", "wrong")
        assert result.outcome is AuthOutcome.INVALID_CREDENTIAL
        assert result.locked_now is False
        assert repo.rows["alice"].failed_attempts == expected

    fifth = guard.authenticate("alice", "wrong")
    assert fifth.locked_now is True
    assert repo.rows["alice"].locked_until == T0 + timedelta(seconds=7200)

    sixth = guard.authenticate("alice", SECRET)
    assert sixth.outcome is AuthOutcome.ACCOUNT_LOCKED
    assert repo.rows["alice"].failed_attempts == 5

    clock.now = T0 + timedelta(seconds=7201)
    seventh = guard.authenticate("alice", SECRET)
    assert seventh.ok
    stored = repo.rows["alice"]
    assert stored.failed_attempts == 0
    assert stored.locked_until is None
    assert stored.last_success_at == clock.now


def test_locked_attempts_do_not_write():
    repo = InMemoryAccounts(make_account(failed_attempts=5, locked_until=T0 + timedelta(hours=2)))
    guard = make_guard(repo)

    for _ in range(3):
        assert guard.authenticate("alice", "wrong").outcome is AuthOutcome.ACCOUNT_LOCKED
    assert repo.saves == 0
    assert repo.rows["alice"].failed_attempts == 5


def test_every_mutating_attempt_is_persisted():
    repo = InMemoryAccounts(make_account())
    guard = make_guard(repo)

    guard.authenticate("alice", "wrong")
    guard.authenticate("alice", SECRET)

    assert repo.saves == 2
    assert repo.rows["alice"].version == 2


def test_returned_account_carries_new_version():
    repo = InMemoryAccounts(make_account(version=7))
    result = make_guard(repo).authenticate("alice", SECRET)
    assert result.account.version == 8


def test_unknown_account_is_invalid_credential_and_still_verifies():
    verify = CountingVerify()
    result = make_guard(InMemoryAccounts(), verify=verify).authenticate("nobody", "x")

    assert result.outcome is AuthOutcome.INVALID_CREDENTIAL
    assert result.account is None
    assert verify.calls == 1


class RacingAccounts(InMemoryAccounts):
    """Another login lands between our load and our first save."""

    def __init__(self, *accounts, races=1):
        super().__init__(*accounts)
        self.races = races

    def save(self, account):
        if self.races:
            self.races -= 1
            current = self.rows[account.username]
            self.rows[account.username] = replace(
                current,
                failed_attempts=current.failed_attempts + 1,
                version=current.version + 1,
            )
        return super().save(account)


def test_concurrent_failure_is_not_lost():
    repo = RacingAccounts(make_account(failed_attempts=3))
    verify = CountingVerify()

    result = make_guard(repo, verify=verify).authenticate("alice", "wrong")

    # 3 stored + 1 from the racing login + ours
    assert repo.rows["alice"].failed_attempts == 5
    assert result.locked_now is True
    assert verify.calls == 1


def test_gives_up_after_retries():
    repo = RacingAccounts(make_account(), races=10)
    with pytest.raises(StorageError):
        make_guard(repo, save_retries=2).authenticate("alice", "wrong")


class BrokenAccounts(InMemoryAccounts):
    def save(self, account):
        raise StorageError("disk on fire")


def test_storage_errors_propagate():
    with pytest.raises(StorageError):
        make_guard(BrokenAccounts(make_account())).authenticate("alice", "wrong")
