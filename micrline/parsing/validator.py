"""MICR field validation utilities."""

from typing import Sequence

from micrline.models import PLACEHOLDER, MICRFields

# ABA routing number checksum weights
_ROUTING_WEIGHTS = [3, 7, 1, 3, 7, 1, 3, 7, 1]


def validate_routing_number(routing: str) -> bool:
    """
    Validate a 9-digit ABA routing number using the modulo-10 checksum.

    The checksum uses weights [3, 7, 1, 3, 7, 1, 3, 7, 1].
    The weighted sum of all 9 digits must be divisible by 10.
    """
    if not routing or len(routing) != 9 or not routing.isdigit():
        return False

    total = sum(int(d) * w for d, w in zip(routing, _ROUTING_WEIGHTS))
    return total % 10 == 0


def validate_fields(fields: MICRFields, symbols: Sequence[str]) -> list[str]:
    """Check parsed fields and symbol counts; return human-readable warnings."""
    warnings = []

    routing = fields.routing_number
    if not routing:
        warnings.append("No routing number detected")
    elif PLACEHOLDER in routing:
        warnings.append("Routing number contains unrecognized characters")
    elif len(routing) != 9:
        warnings.append(f"Routing number has {len(routing)} digits, expected 9")
    elif not fields.routing_valid:
        warnings.append("Routing number failed checksum validation")

    account = fields.account_number
    if not account:
        warnings.append("No account number detected")
    elif not account.isdigit():
        warnings.append("Account number contains unrecognized characters")

    transit_count = sum(1 for s in symbols if s == "transit")
    on_us_count = sum(1 for s in symbols if s == "on_us")

    if transit_count != 2:
        warnings.append(f"Expected 2 transit symbols, found {transit_count}")
    if on_us_count == 0:
        warnings.append("No on-us symbol detected")
    elif on_us_count > 2:
        warnings.append(f"Expected 1-2 on-us symbols, found {on_us_count}")

    return warnings
