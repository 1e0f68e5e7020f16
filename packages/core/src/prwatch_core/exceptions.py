"""Custom exceptions for prwatch."""


class PRWatchError(Exception):
    """Base exception for all prwatch errors."""


class ConfigError(PRWatchError):
    """Missing or invalid configuration. Fatal at startup."""


class AuthError(PRWatchError):
    """Webhook request failed signature verification."""


class TransientFetchError(PRWatchError):
    """A source-host call failed. Retried on the next reconciliation cycle."""


class OwnershipFetchError(PRWatchError):
    """A team's ownership file could not be fetched or parsed."""

    def __init__(self, team: str, path: str, reason: str):
        super().__init__(f"Could not load ownership file for team {team!r} ({path}): {reason}")
        self.team = team
        self.path = path


class NotificationDispatchError(PRWatchError):
    """A notifier failed to deliver an event."""

    def __init__(self, kind: str, pr_number: int, cause: Exception):
        super().__init__(f"{kind} notification for PR #{pr_number} failed ({type(cause).__name__}: {cause})")
        self.kind = kind
        self.pr_number = pr_number
        self.cause = cause
