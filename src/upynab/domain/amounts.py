"""Amount conversion between the bank's minor units and budget milliunits."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from upynab.domain.errors import ValidationError

DEFAULT_IMPORT_ID_MAX_LENGTH = 36


def _require_int(value, name: str) -> int:
    # bool is an int subclass; a True amount is always a caller bug
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class AmountCodec:
    """Lossless integer conversion between two fixed-point representations.

    The source bank reports amounts with ``source_exponent`` decimal places
    (cents: 2) and the budget app expects ``target_exponent`` (milliunits: 3).
    The conversion is a pure multiplication by ``10 ** (target - source)``.
    """

    source_exponent: int = 2
    target_exponent: int = 3

    def __post_init__(self):
        if self.target_exponent < self.source_exponent:
            raise ValidationError(
                "Target exponent must not be smaller than source exponent "
                f"({self.target_exponent} < {self.source_exponent})"
            )

    @property
    def ratio(self) -> int:
        return 10 ** (self.target_exponent - self.source_exponent)

    def to_target(self, minor_units: int) -> int:
        """Convert source minor units to target units."""
        return _require_int(minor_units, "minor_units") * self.ratio

    def validate(
        self,
        minor_units: int,
        target_units: int,
        decimal_value: Optional[str] = None,
    ) -> bool:
        """Check that ``target_units`` is the exact image of ``minor_units``.

        When the provider's decimal string (e.g. "-25.50") is supplied it must
        describe the same amount as well.
        """
        try:
            minor_units = _require_int(minor_units, "minor_units")
            target_units = _require_int(target_units, "target_units")
        except ValidationError:
            return False

        if self.to_target(minor_units) != target_units:
            return False
        if target_units % self.ratio != 0 or target_units // self.ratio != minor_units:
            return False

        if decimal_value is not None:
            try:
                scaled = Decimal(decimal_value).scaleb(self.target_exponent)
            except (InvalidOperation, TypeError, ValueError):
                return False
            if scaled != Decimal(target_units):
                return False

        return True

    def to_decimal(self, target_units: int) -> Decimal:
        """Target units as a currency amount, for display."""
        return Decimal(_require_int(target_units, "target_units")).scaleb(-self.target_exponent)


def truncate_import_id(source_id: str, max_length: int = DEFAULT_IMPORT_ID_MAX_LENGTH) -> str:
    """Prefix-truncate a source transaction id to the target's import id limit."""
    if max_length <= 0:
        raise ValidationError(f"Import id length must be positive, got {max_length}")
    return source_id[:max_length]
