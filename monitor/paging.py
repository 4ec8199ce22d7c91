"""Search and fixed-size paging over the market listing."""
import math
from dataclasses import dataclass

DEFAULT_PAGE_SIZE = 50


@dataclass(frozen=True)
class Page:
    items: tuple
    number: int
    total_pages: int
    total_items: int
    searching: bool = False

    @property
    def has_previous(self):
        return not self.searching and self.number > 1

    @property
    def has_next(self):
        return not self.searching and self.number < self.total_pages


def total_pages(count, page_size):
    return max(1, math.ceil(count / page_size))


def matches(coin, term):
    """Case-insensitive substring match on name or symbol."""
    term = term.lower()
    return term in (coin.name or "").lower() or term in (coin.symbol or "").lower()


def page(all_coins, search_term="", page_number=1, page_size=DEFAULT_PAGE_SIZE):
    """Window over ``all_coins`` for display.

    A non-empty ``search_term`` returns every match and ignores paging.
    Otherwise the 1-based ``page_number`` is clamped into range and that
    slice is returned.
    """
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    coins = tuple(all_coins or ())
    if search_term:
        found = tuple(c for c in coins if matches(c, search_term))
        return Page(items=found, number=1, total_pages=1, total_items=len(found), searching=True)

    pages = total_pages(len(coins), page_size)
    number = min(max(1, int(page_number)), pages)
    start = (number - 1) * page_size
    return Page(
        items=coins[start:start + page_size],
        number=number,
        total_pages=pages,
        total_items=len(coins),
    )
