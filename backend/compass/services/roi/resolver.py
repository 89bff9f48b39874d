"""
Forward-fill price resolver.

Turns sparse daily price rows into a gap-free per-symbol series over a
calendar range by carrying the last observed close forward.
"""
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence, Tuple

from compass.core.dates import to_date_key

PriceRow = Tuple[str, date, Decimal]


def fill_prices_for_dates(
    symbols: Sequence[str],
    rows: Iterable[PriceRow],
    dates: Sequence[date],
) -> Dict[str, Dict[str, Decimal]]:
    """
    Resolve a close for every target date per symbol.

    Args:
        symbols: Symbols to resolve (symbols without rows get an empty map)
        rows: (symbol, date, close) observations, any order
        dates: Ascending target calendar dates

    Returns:
        {symbol: {date_key: close}}. Dates before a symbol's first
        observation are absent, never zero.
    """
    rows_by_symbol: Dict[str, List[Tuple[str, Decimal]]] = defaultdict(list)
    for symbol, row_date, close in rows:
        rows_by_symbol[symbol].append((to_date_key(row_date), Decimal(close)))

    for entries in rows_by_symbol.values():
        entries.sort(key=lambda entry: entry[0])

    date_keys = [to_date_key(d) for d in dates]
    filled: Dict[str, Dict[str, Decimal]] = {}

    for symbol in symbols:
        entries = rows_by_symbol.get(symbol, [])
        index = 0
        last_close = None
        symbol_map: Dict[str, Decimal] = {}

        for date_key in date_keys:
            while index < len(entries) and entries[index][0] <= date_key:
                last_close = entries[index][1]
                index += 1
            if last_close is not None:
                symbol_map[date_key] = last_close

        filled[symbol] = symbol_map

    return filled
