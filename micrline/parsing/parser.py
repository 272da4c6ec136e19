"""Parse recognized E-13B symbols into structured check fields."""

from typing import Sequence

from micrline.models import PLACEHOLDER, MICRFields
from micrline.parsing.validator import validate_fields, validate_routing_number


def parse_micr_line(symbols: Sequence[str]) -> MICRFields:
    """
    Parse a sequence of resolved symbols into structured MICR fields.

    Standard US check MICR E-13B format:
        ⑆ROUTING⑆  ACCOUNT⑈CHECK_NUMBER
    or:
        ⑆ROUTING⑆  CHECK_NUMBER⑈ACCOUNT⑈

    The transit symbols (⑆) always delimit the routing number.
    The on-us symbol (⑈) separates account and check number fields.
    Unresolved glyphs stay in the fields as ``?`` so they fail validation.
    """
    fields = MICRFields()
    if not symbols:
        fields.warnings = ["No characters recognized"]
        return fields

    transit_positions = [i for i, s in enumerate(symbols) if s == "transit"]
    on_us_positions = [i for i, s in enumerate(symbols) if s == "on_us"]
    amount_positions = [i for i, s in enumerate(symbols) if s == "amount"]

    # Routing number sits between the first pair of transit symbols
    if len(transit_positions) >= 2:
        fields.routing_number = _digits(symbols[transit_positions[0] + 1 : transit_positions[1]])

    if transit_positions and on_us_positions:
        after_transit = transit_positions[-1] + 1
        relevant_on_us = [p for p in on_us_positions if p >= after_transit]

        if relevant_on_us:
            fields.account_number = _digits(symbols[after_transit : relevant_on_us[0]])
            # The amount field, when present, closes the line
            tail_end = next(
                (p for p in amount_positions if p > relevant_on_us[-1]), len(symbols)
            )
            fields.check_number = _digits(symbols[relevant_on_us[-1] + 1 : tail_end])

            # Empty tail: the check number comes first (⑆ROUTING⑆ CHECK⑈ACCOUNT⑈)
            if not fields.check_number and len(relevant_on_us) >= 2:
                fields.check_number = _digits(symbols[after_transit : relevant_on_us[0]])
                fields.account_number = _digits(
                    symbols[relevant_on_us[0] + 1 : relevant_on_us[1]]
                )
        else:
            fields.account_number = _digits(symbols[after_transit:])

    elif not transit_positions and on_us_positions:
        digits = _digits(symbols[: on_us_positions[0]])
        if len(digits) >= 9:
            fields.routing_number = digits[:9]
            fields.account_number = digits[9:]
        else:
            fields.account_number = digits

    elif not transit_positions:
        # No delimiters at all: assume the routing number leads
        digits = _digits(symbols)
        if len(digits) >= 9:
            fields.routing_number = digits[:9]
            fields.account_number = digits[9:]
        else:
            fields.account_number = digits

    if len(amount_positions) >= 2:
        fields.amount = _digits(symbols[amount_positions[0] + 1 : amount_positions[1]])

    # Empty strings mean "delimited but blank"; report them as missing
    for name in ("routing_number", "account_number", "check_number", "amount"):
        if getattr(fields, name) == "":
            setattr(fields, name, None)

    fields.routing_valid = (
        validate_routing_number(fields.routing_number) if fields.routing_number else False
    )
    fields.warnings = validate_fields(fields, symbols)
    return fields


def _digits(symbols: Sequence[str]) -> str:
    return "".join(s for s in symbols if s.isdigit() or s == PLACEHOLDER)
