"""
Pre-flight checks for quote-to-order conversion.

A quote can be converted only when:
  1. It has not already been converted (``converted_to_order_id`` unset)
  2. It is ACCEPTED

Each blocked check carries a categorized reason so callers and the API can
tell "accept it first" apart from "already has an order".
"""

from dataclasses import dataclass
from typing import Optional

from backoffice.models.enums import ConversionBlock, QuoteStatus
from backoffice.models.records import Quote


@dataclass
class ConversionCheck:
    """Result of the conversion pre-flight check."""

    convertible: bool
    block_reason: Optional[ConversionBlock] = None
    message: Optional[str] = None


def check_convertible(quote: Quote) -> ConversionCheck:
    """
    Decide whether a quote may be turned into an order.

    Args:
        quote: The quote as currently stored.

    Returns:
        ConversionCheck with convertible=True, or the reason it is blocked.
    """
    if quote.converted_to_order_id:
        return ConversionCheck(
            convertible=False,
            block_reason=ConversionBlock.ALREADY_CONVERTED,
            message=f"Quote {quote.quote_number} has already been converted to an order",
        )

    if quote.status != QuoteStatus.ACCEPTED.value:
        return ConversionCheck(
            convertible=False,
            block_reason=ConversionBlock.NOT_ACCEPTED,
            message=(
                f"Quote must be ACCEPTED to convert to an order. "
                f"Current status: {quote.status}"
            ),
        )

    return ConversionCheck(convertible=True)
