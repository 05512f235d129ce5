"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class ConfigurationError(DomainError):
    """Configuration is missing or incomplete; the user must act."""


class NoActiveProfileError(ConfigurationError):
    """No budget profile is marked active."""


class ProfileNotFoundError(ConfigurationError, NotFoundError):
    """A named budget profile does not exist."""


class MissingAccountMappingsError(ConfigurationError):
    """A budget profile has no enabled account mappings."""


class CredentialError(DomainError):
    """A required API credential is missing."""


class AmountValidationError(ValidationError):
    """Amount conversion between providers did not round-trip."""


class DateRangeError(ValidationError):
    """Requested sync window violates the allowed bounds."""


class LedgerError(DomainError):
    """The local ledger could not be read or written."""


def no_active_profile() -> str:
    """Return message for a missing active profile."""
    return "No active budget profile. Add a profile and mark it active first."


def profile_not_found(name: str) -> str:
    """Return message for an unknown profile name."""
    return f"Budget profile '{name}' not found"


def no_account_mappings(profile_name: str) -> str:
    """Return message for a profile without usable account mappings."""
    return f"Budget profile '{profile_name}' has no enabled account mappings"


def missing_token(service: str) -> str:
    """Return message for a missing API token."""
    return f"API token for '{service}' not found"


def amount_mismatch(transaction_id: str, minor_units: int, target_units: int) -> str:
    """Return message for a failed amount conversion check."""
    return (
        f"Amount conversion validation failed for transaction {transaction_id}: "
        f"{minor_units} minor units -> {target_units} milliunits"
    )
