"""Store exceptions."""


class StoreError(Exception):
    """Base exception for store failures."""


class NotFoundError(StoreError):
    """No tracked PR matches the lookup."""


class DuplicatePRError(StoreError):
    """A tracked PR with this number already exists."""

    def __init__(self, pr_number: int):
        super().__init__(f"PR #{pr_number} is already tracked")
        self.pr_number = pr_number


class StaleRecordError(StoreError):
    """The row changed since it was read (version mismatch)."""

    def __init__(self, pr_number: int, expected_version: int):
        super().__init__(f"PR #{pr_number} was modified concurrently (expected version {expected_version})")
        self.pr_number = pr_number
        self.expected_version = expected_version


class InvalidTransitionError(StoreError):
    """The requested status change is not allowed from the row's current status."""

    def __init__(self, pr_number: int, current: str, target: str):
        super().__init__(f"PR #{pr_number} cannot move from {current!r} to {target!r}")
        self.pr_number = pr_number
        self.current = current
        self.target = target
