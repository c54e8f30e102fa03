#!/usr/bin/env python3
"""
address_resolver.py

Maps addresses to the function that owns them.

The function table is sorted by address, and function i is taken to cover
[table[i].address, table[i+1].address). The last function has no upper
bound. Lookups are floor searches: the owner of an address is the
highest-addressed function whose start is <= the address.

Lookups can run on raw addresses or on scaled addresses (address divided
by the histogram unit size). Keys are captured when the resolver is
built, so build it after the table has been scaled and do not mutate the
table afterwards.
"""

from __future__ import annotations

import bisect
from typing import List, Optional, Sequence, Tuple

from gmon_reader.symtab import FunctionEntry


class AddressResolver:
    def __init__(self, table: Sequence[FunctionEntry]) -> None:
        self._table = table
        self._raw_keys: List[int] = [e.address for e in table]
        self._scaled_keys: List[int] = [e.scaled_address for e in table]

    def __len__(self) -> int:
        return len(self._table)

    def _keys(self, use_scaled: bool) -> List[int]:
        return self._scaled_keys if use_scaled else self._raw_keys

    def floor_index(self, address: float, use_scaled: bool = False) -> Optional[int]:
        """
        Index of the highest entry whose address is <= address.

        None when the table is empty or address lies below the first entry.
        """
        idx = bisect.bisect_right(self._keys(use_scaled), address) - 1
        if idx < 0:
            return None
        return idx

    def find_owner(
        self,
        address: float,
        use_scaled: bool = False,
    ) -> Tuple[Optional[FunctionEntry], Optional[int]]:
        """
        Return (entry, index) of the function owning address, or (None, None).
        """
        idx = self.floor_index(address, use_scaled)
        if idx is None:
            return None, None
        return self._table[idx], idx

    def lower_bound(self, index: int, use_scaled: bool = False) -> int:
        """Start of the range covered by entry index."""
        return self._keys(use_scaled)[index]

    def upper_bound(self, index: int, use_scaled: bool = False) -> Optional[int]:
        """End of the range covered by entry index; None for the last entry."""
        if index + 1 < len(self._table):
            return self._keys(use_scaled)[index + 1]
        return None

    def enumerate_owners_in_range(
        self,
        low: float,
        high: float,
        use_scaled: bool = False,
    ) -> List[int]:
        """
        Indices of every entry whose range may intersect [low, high).

        Starts at the owner of low (or at the first entry when low lies
        below the table) and walks forward while entries start below high.
        """
        keys = self._keys(use_scaled)
        start = self.floor_index(low, use_scaled)
        if start is None:
            start = 0

        out: List[int] = []
        i = start
        while i < len(keys) and keys[i] < high:
            out.append(i)
            i += 1
        return out


__all__ = [
    "AddressResolver",
]
