"""Binary-search extraction of time-bounded sub-ranges from sorted tick arrays.

Tick arrays from the loader are sorted ascending by ``timestamp``. Slicing is
O(log n + k): two searches, then a shallow slice. Symbol / epoch matching is
not monotonic in the sort key, so it runs as a linear pass over the slice.
"""

from bisect import bisect_left, bisect_right
from collections.abc import Mapping, Sequence
from typing import Any

from updown.services.backtest.timeutil import to_ms


def _record_ms(record: Mapping[str, Any]) -> int:
    return to_ms(record["timestamp"])


def lower_bound(records: Sequence[Mapping], target_ms: int, keys: Sequence[int] | None = None) -> int:
    """First index whose timestamp is >= target_ms (len(records) if none)."""
    if keys is not None:
        return bisect_left(keys, target_ms)
    return bisect_left(records, target_ms, key=_record_ms)


def upper_bound(records: Sequence[Mapping], target_ms: int, keys: Sequence[int] | None = None) -> int:
    """First index whose timestamp is > target_ms (len(records) if none)."""
    if keys is not None:
        return bisect_right(keys, target_ms)
    return bisect_right(records, target_ms, key=_record_ms)


def slice_by_time(
    records: Sequence[Mapping],
    start_ms: int,
    end_ms: int,
    keys: Sequence[int] | None = None,
) -> list:
    """Records with start_ms <= timestamp < end_ms.

    ``keys`` may hold precomputed epoch-ms timestamps parallel to ``records``
    to skip re-parsing on every lookup. The source array is never mutated.
    """
    if end_ms <= start_ms:
        return []
    lo = lower_bound(records, start_ms, keys)
    hi = upper_bound(records, end_ms - 1, keys)
    return list(records[lo:hi])


def timestamp_keys(records: Sequence[Mapping]) -> list[int]:
    """Epoch-ms key for every record, for repeated slicing of the same array."""
    return [_record_ms(r) for r in records]


def filter_by_symbol(
    records: Sequence[Mapping],
    symbol: str | None,
    epoch: int | None = None,
    exact: bool = False,
    keep_unlabelled: bool = False,
) -> list:
    """Keep records whose symbol matches the window symbol.

    Prefix match by default (``btc`` matches ``btc-up``); ``exact`` requires
    equality. When both the record and the caller carry a ``window_epoch``
    the two must agree. Matching is case-insensitive. Records with no symbol
    are dropped unless ``keep_unlabelled``.
    """
    if not symbol:
        return list(records)
    wanted = symbol.lower()
    kept = []
    for record in records:
        sym = str(record.get("symbol") or "").lower()
        if not sym and keep_unlabelled:
            kept.append(record)
            continue
        if exact:
            if sym != wanted:
                continue
        elif not sym.startswith(wanted):
            continue
        record_epoch = record.get("window_epoch")
        if epoch is not None and record_epoch is not None and int(record_epoch) != epoch:
            continue
        kept.append(record)
    return kept
