from dataclasses import replace
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.user import User
from security.errors import ConcurrentUpdateError, StorageError
from security.lockout import Account


def account_from_user(user: User) -> Account:
    return Account(
        id=user.id,
        username=user.username,
        credential_hash=user.password_hash,
        failed_attempts=user.failed_login_attempts or 0,
        locked_until=user.locked_until,
        last_success_at=user.last_login_at,
        version=user.auth_version or 0,
    )


class SqlAccountRepository:
    """Reads and writes the lockout fields of ``users`` rows.

    Writes are conditional on ``auth_version`` so two logins racing on the
    same account cannot overwrite each other's failure count.
    """

    def __init__(self, session=None, active_only: bool = True):
        self.session = session or db.session
        self.active_only = active_only

    def load(self, identifier: str) -> Optional[Account]:
        try:
            q = self.session.query(User).filter_by(username=identifier)
            if self.active_only:
                q = q.filter_by(is_active=True)
            user = q.execution_options(populate_existing=True).first()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError(f"Could not load account {identifier!r}") from exc
        return account_from_user(user) if user else None

    def save(self, account: Account) -> Account:
        stmt = (
            update(User)
            .where(User.id == account.id, User.auth_version == account.version)
            .values(
                failed_login_attempts=account.failed_attempts,
                locked_until=account.locked_until,
                last_login_at=account.last_success_at,
                auth_version=account.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
            if result.rowcount != 1:
                self.session.rollback()
                raise ConcurrentUpdateError(account.username)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError(f"Could not save account {account.username!r}") from exc
        return replace(account, version=account.version + 1)
