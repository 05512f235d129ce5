"""Merchant rule classifier.

Reduces a transaction description to a merchant pattern and looks it up in
the per-budget merchant rules kept in the ledger.
"""

import logging
import re
from typing import Optional

from upynab.database.base import Ledger
from upynab.domain.entities import BankTransaction, Categorization, MerchantRule
from upynab.domain.errors import ValidationError
from upynab.domain.ports import Classifier

logger = logging.getLogger(__name__)

NOISE_TOKENS = ("CARD PURCHASE", "EFTPOS", "VISA", "MASTERCARD", "PAYPAL")
MIN_PATTERN_LENGTH = 3

_DATE_PATTERNS = (
    re.compile(r"\d{2}/\d{2}/\d{4}"),
    re.compile(r"\d{2}/\d{2}/\d{2}"),
    re.compile(r"\d{4}-\d{2}-\d{2}"),
)
_LONG_DIGITS = re.compile(r"\d{4,}")
_TRAILING_NUMBER = re.compile(r"\s+\d+\s*$")
_EDGE_PUNCTUATION = "!\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~"


def extract_pattern_from_text(text: str) -> str:
    """Normalize free text to a merchant pattern.

    Examples:
        "EFTPOS WOOLWORTHS 1234 SYDNEY" -> "WOOLWORTHS"
        "Coles 0423" -> "COLES"
    """
    cleaned = text.upper().strip()

    without_noise = cleaned
    for token in NOISE_TOKENS:
        without_noise = without_noise.replace(token, "")
    without_noise = without_noise.strip()

    components = without_noise.split()
    if not components:
        return cleaned
    first = components[0]

    pattern = first
    for date_pattern in _DATE_PATTERNS:
        pattern = date_pattern.sub("", pattern)
    pattern = _TRAILING_NUMBER.sub("", pattern)
    pattern = _LONG_DIGITS.sub("", pattern)
    pattern = pattern.strip(_EDGE_PUNCTUATION).strip()

    return pattern if len(pattern) >= MIN_PATTERN_LENGTH else first


def extract_merchant_pattern(transaction: BankTransaction) -> str:
    """Pattern for a transaction, preferring raw text when it is more detailed."""
    description = transaction.display_description
    if transaction.raw_text and len(transaction.raw_text) > len(description):
        return extract_pattern_from_text(transaction.raw_text)
    return extract_pattern_from_text(description)


def normalize_payee_name(description: str) -> str:
    """First word without digits and longer than two characters, capitalized."""
    for component in description.split():
        if len(component) > 2 and not any(c.isdigit() for c in component):
            return component.capitalize()
    return description


class MerchantClassifier(Classifier):
    """Classifier backed by the merchant rules table."""

    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    def find_rule(self, pattern: str, budget_id: str) -> Optional[MerchantRule]:
        """Exact match first, then the first rule contained in or containing the pattern."""
        pattern = pattern.upper()
        rule = self.ledger.get_merchant_rule(budget_id, pattern)
        if rule is not None:
            logger.debug("Exact merchant rule match: %s -> %s", pattern, rule.category_name)
            return rule

        for rule in self.ledger.list_merchant_rules(budget_id):
            if rule.merchant_pattern in pattern or pattern in rule.merchant_pattern:
                logger.debug(
                    "Partial merchant rule match: %s ~ %s -> %s",
                    pattern,
                    rule.merchant_pattern,
                    rule.category_name,
                )
                return rule
        return None

    def classify(self, transaction: BankTransaction, budget_id: str) -> Optional[Categorization]:
        pattern = extract_merchant_pattern(transaction)
        if not pattern:
            return None
        rule = self.find_rule(pattern, budget_id)
        if rule is None:
            logger.debug("No merchant rule for pattern %s", pattern)
            return None
        return Categorization(
            category_id=rule.category_id,
            category_name=rule.category_name,
            payee_name=rule.payee_name or None,
            confidence=rule.confidence,
            merchant_pattern=rule.merchant_pattern,
        )

    def record_applied(self, categorization: Categorization, budget_id: str) -> None:
        self.ledger.record_merchant_rule_usage(budget_id, categorization.merchant_pattern)

    def learn(
        self,
        transaction: BankTransaction,
        budget_id: str,
        category_id: str,
        category_name: str,
        payee_name: Optional[str] = None,
        confidence: float = 1.0,
    ) -> MerchantRule:
        """Create or replace the rule for the transaction's merchant pattern.

        Raises:
            ValidationError: If no pattern can be extracted or the category is empty
        """
        pattern = extract_merchant_pattern(transaction)
        if not pattern:
            raise ValidationError(
                f"Cannot extract a merchant pattern from '{transaction.display_description}'"
            )
        payee = payee_name or normalize_payee_name(transaction.display_description)
        self.ledger.save_merchant_rule(budget_id, pattern, category_id, category_name, payee, confidence)
        logger.info("Learned merchant rule %s -> %s", pattern, category_name)
        return self.ledger.get_merchant_rule(budget_id, pattern)
