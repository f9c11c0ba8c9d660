"""PriceRanker: Orders valid quotes and computes the spread between them.

Algorithm:
    1. Sort quotes by price, highest first
    2. Ties keep the order the quotes were given in (source registration order)
    3. best = first, worst = last
    4. absolute spread = best - worst
    5. percent spread = (best - worst) / worst * 100, or 0 for a single quote

.. code-block:: python

    >>> ranked = rank([Quote("a", 100.0), Quote("b", 102.0)])
    >>> ranked.best.source_name
    'b'
    >>> ranked.percent_spread
    2.0
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .Quote import Quote


@dataclass(frozen=True)
class RankedQuotes:
    """Output of :func:`rank`.

    :ivar quotes: Quotes ordered highest price first.
    :ivar best: Highest-priced quote.
    :ivar worst: Lowest-priced quote.
    :ivar absolute_spread: best.price - worst.price.
    :ivar percent_spread: Spread relative to the worst price, in percent.
    """

    quotes: tuple[Quote, ...]
    best: Quote
    worst: Quote
    absolute_spread: float
    percent_spread: float


def rank(quotes: Sequence[Quote]) -> RankedQuotes:
    """Rank quotes by price.

    Callers must pass validated quotes only; a worst price of zero is
    therefore impossible.

    :param quotes: Non-empty sequence of valid quotes, in registration order.
    :returns: RankedQuotes with ordering and spread statistics.
    :raises ValueError: If quotes is empty.
    """
    if not quotes:
        raise ValueError("cannot rank an empty set of quotes")

    # sorted() is stable, so equal prices keep their input order
    ordered = tuple(sorted(quotes, key=lambda q: q.price, reverse=True))
    best = ordered[0]
    worst = ordered[-1]

    if len(ordered) == 1:
        return RankedQuotes(ordered, best, worst, 0.0, 0.0)

    absolute_spread = best.price - worst.price
    percent_spread = absolute_spread / worst.price * 100
    return RankedQuotes(ordered, best, worst, absolute_spread, percent_spread)
