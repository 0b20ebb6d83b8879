"""Sort-order keys for positioning siblings under a parent.

Keys are strings over a base-62 alphabet (``0-9A-Za-z``, ASCII order) read as
the fractional digits of a number in ``[0, 1)``. A key never ends in ``0``, so
ordinal string order matches numeric order and there is always room for a key
between any two distinct keys.
"""

from __future__ import annotations

DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
BASE = len(DIGITS)
DEFAULT_RANK = "VVV"
MIN_WIDTH = 3

_DIGIT_INDEX = {ch: idx for idx, ch in enumerate(DIGITS)}


def _check_key(key: str, *, name: str) -> None:
    if not key:
        raise ValueError(f"{name} sort order must not be empty")
    for ch in key:
        if ch not in _DIGIT_INDEX:
            raise ValueError(f"invalid character {ch!r} in {name} sort order {key!r}")
    if key.endswith(DIGITS[0]):
        raise ValueError(f"{name} sort order {key!r} must not end with {DIGITS[0]!r}")


def _midpoint(a: str, b: str | None) -> str:
    # a may be empty (zero); b is None for "one past the end".
    if b is not None:
        n = 0
        while n < len(b) and (a[n] if n < len(a) else DIGITS[0]) == b[n]:
            n += 1
        if n > 0:
            return b[:n] + _midpoint(a[n:], b[n:])

    digit_a = _DIGIT_INDEX[a[0]] if a else 0
    digit_b = _DIGIT_INDEX[b[0]] if b is not None else BASE
    if digit_b - digit_a > 1:
        return DIGITS[(digit_a + digit_b + 1) // 2]

    # Adjacent digits: no room at this position.
    if b is not None and len(b) > 1:
        return b[:1]
    return DIGITS[digit_a] + _midpoint(a[1:], None)


def middle_rank(before: str | None, after: str | None) -> str:
    """Return a key strictly between ``before`` and ``after``.

    ``None`` means the range is open on that side. With both sides open the
    canonical default rank is returned.
    """
    if before is None and after is None:
        return DEFAULT_RANK
    if before is not None:
        _check_key(before, name="before")
    if after is not None:
        _check_key(after, name="after")
    if before is not None and after is not None and before >= after:
        raise ValueError(
            f"before sort order {before!r} must sort before after {after!r}"
        )
    return _midpoint(before or "", after)


def _encode(value: int, width: int) -> str:
    chars: list[str] = []
    for _ in range(width):
        value, rem = divmod(value, BASE)
        chars.append(DIGITS[rem])
    return "".join(reversed(chars)).rstrip(DIGITS[0])


def initial_ranks(count: int) -> list[str]:
    """Return ``count`` strictly increasing keys spread across the key space."""
    if count < 0:
        raise ValueError("count must be non-negative")
    if count == 0:
        return []

    width = MIN_WIDTH
    while BASE**width <= count:
        width += 1
    step = BASE**width // (count + 1)
    return [_encode(step * (idx + 1), width) for idx in range(count)]
