# plugins/field_calculator.py
"""
Maps positional string tokens of an ASCII reply onto named, scaled values.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Sequence

logger = logging.getLogger(__name__)

_ONE = Decimal(1)
_ZERO = Decimal(0)


@dataclass(frozen=True)
class FieldRule:
    """One extraction rule: tokens[index] * factor + offset -> variable_name."""
    index: int
    variable_name: str
    factor: Decimal = _ONE
    offset: Decimal = _ZERO
    unit: Optional[str] = None

    def apply(self, raw: Decimal) -> Decimal:
        if self.factor == _ONE and self.offset == _ZERO:
            return raw
        return raw * self.factor + self.offset


def parse_decimal(token: str) -> Optional[Decimal]:
    """
    Parse a token as a decimal number, always with '.' as separator.

    Returns None for anything that is not a finite number.
    """
    try:
        value = Decimal(token.strip())
    except (InvalidOperation, AttributeError):
        return None
    return value if value.is_finite() else None


class StringArrayCalculator:
    """
    Applies a list of FieldRules to a token sequence.

    Stateless; the same tokens and rules always give the same values.
    """

    def calculate(self, tokens: Sequence[str], rules: Sequence[FieldRule], variables: Dict[str, Decimal]) -> Dict[str, Decimal]:
        """
        Write one value per applicable rule into ``variables`` and return it.

        A rule whose index is out of range or whose token is not numeric is
        skipped; the remaining rules are still processed.
        """
        for rule in rules:
            if not 0 <= rule.index < len(tokens):
                logger.warning(f"Field '{rule.variable_name}': index {rule.index} out of range for {len(tokens)} tokens, skipped")
                continue
            raw = parse_decimal(tokens[rule.index])
            if raw is None:
                logger.debug(f"Field '{rule.variable_name}': token '{tokens[rule.index]}' is not numeric, skipped")
                continue
            variables[rule.variable_name] = rule.apply(raw)
        return variables
