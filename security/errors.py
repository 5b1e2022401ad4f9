class LockoutError(Exception):
    """Base class for failures raised by the login lockout machinery."""


class StorageError(LockoutError):
    """Loading or saving account state failed; the request cannot continue."""


class ConcurrentUpdateError(StorageError):
    """A conditional save found the account changed since it was loaded."""

    def __init__(self, identifier: str):
        super().__init__(f"Account {identifier!r} was modified concurrently")
        self.identifier = identifier
