"""Numeric validity policy for collected quotes.

Fetchers report whatever they parsed; whether a price is usable is decided
here, once, after collection.
"""

from __future__ import annotations

import math
from numbers import Real

from .Quote import Quote


def is_valid(quote: Quote) -> bool:
    """Check whether a quote's price can take part in ranking.

    :param quote: Quote to check.
    :returns: True iff the price is a finite real number strictly above zero.

    .. code-block:: python

        >>> is_valid(Quote("a", 1.5))
        True
        >>> is_valid(Quote("a", float("nan")))
        False
    """
    price = quote.price
    if isinstance(price, bool) or not isinstance(price, Real):
        return False
    return math.isfinite(price) and price > 0
