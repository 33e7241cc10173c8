"""LexoRank-style ordering keys for list and meal items.

A rank looks like ``0|hzzzzz:`` or ``0|i00007:k``: a bucket, a fixed-width base-36 integer
part and an optional base-36 fraction. Plain string comparison of two ranks in the same
bucket matches their numeric order, so items can be sorted by ``listOrder`` directly, and a
new rank can always be produced between two existing ones by extending the fraction.
"""

import re
from dataclasses import dataclass

from src.core.errors import ValidationFailed


DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
BASE = len(DIGITS)
INTEGER_WIDTH = 6
DEFAULT_BUCKET = "0"
NEXT_STEP = 8

_MAX_INTEGER = BASE**INTEGER_WIDTH - 1
_RANK_PATTERN = re.compile(r"^([0-2])\|([0-9a-z]{6}):([0-9a-z]*)$")


@dataclass(frozen=True)
class _Rank:
    """Rank as a scaled integer: value / BASE**scale."""

    bucket: str
    value: int
    scale: int

    def rescale(self, scale: int) -> int:
        return self.value * BASE ** (scale - self.scale)


def _to_base36(value: int, width: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, BASE)
        digits.append(DIGITS[remainder])
    return "".join(reversed(digits)).rjust(width, "0")


def _parse(rank: str) -> _Rank:
    match = _RANK_PATTERN.match(rank)
    if not match:
        raise ValidationFailed(f"Malformed rank: {rank!r}")
    bucket, integer, fraction = match.groups()
    fraction = fraction.rstrip("0")
    digits = integer + fraction
    return _Rank(bucket=bucket, value=int(digits, BASE), scale=len(fraction))


def _format(bucket: str, value: int, scale: int) -> str:
    # Drop trailing zero digits so equal values always render identically.
    while scale and value % BASE == 0:
        value //= BASE
        scale -= 1
    integer, fraction = divmod(value, BASE**scale)
    fraction_digits = _to_base36(fraction, scale) if scale else ""
    return f"{bucket}|{_to_base36(integer, INTEGER_WIDTH)}:{fraction_digits}"


def _midpoint(bucket: str, lower: _Rank, upper: _Rank) -> str:
    scale = max(lower.scale, upper.scale)
    low = lower.rescale(scale)
    high = upper.rescale(scale)
    # Adjacent at this precision: widen by one digit until a value fits in between.
    while high - low < 2:  # noqa: PLR2004
        scale += 1
        low *= BASE
        high *= BASE
    return _format(bucket, (low + high) // 2, scale)


def min_rank(bucket: str = DEFAULT_BUCKET) -> str:
    """Return the lowest representable rank (never assigned to an item)."""
    return _format(bucket, 0, 0)


def max_rank(bucket: str = DEFAULT_BUCKET) -> str:
    """Return the highest representable rank (never assigned to an item)."""
    return _format(bucket, _MAX_INTEGER, 0)


def middle_rank(bucket: str = DEFAULT_BUCKET) -> str:
    """Return the rank used to seed an empty list."""
    return rank_between(min_rank(bucket), max_rank(bucket))


def next_rank(after: str | None = None) -> str:
    """Return a rank strictly greater than ``after``.

    Without a prior rank this is the middle rank. Otherwise the integer part is advanced by a
    fixed step so that sequential appends stay short; close to the top of the space the rank
    is bisected toward the maximum instead.
    """
    if after is None:
        return middle_rank()

    current = _parse(after)
    floor = current.value // BASE**current.scale
    candidate = floor + NEXT_STEP
    if candidate < _MAX_INTEGER:
        return _format(current.bucket, candidate, 0)
    return rank_between(after, None)


def rank_between(lower: str | None, upper: str | None) -> str:
    """Return a rank strictly between ``lower`` and ``upper``.

    ``None`` stands for the open end of the rank space on that side.

    Raises:
        ValidationFailed: If a rank is malformed, the buckets differ, or lower >= upper
    """
    bucket = next((_parse(rank).bucket for rank in (lower, upper) if rank is not None), DEFAULT_BUCKET)
    low = _parse(lower) if lower is not None else _parse(min_rank(bucket))
    high = _parse(upper) if upper is not None else _parse(max_rank(bucket))

    if low.bucket != high.bucket:
        raise ValidationFailed(f"Ranks belong to different buckets: {lower!r}, {upper!r}")

    scale = max(low.scale, high.scale)
    if low.rescale(scale) >= high.rescale(scale):
        raise ValidationFailed(f"Lower rank {lower!r} is not below upper rank {upper!r}")

    return _midpoint(bucket, low, high)


def rank_before(upper: str | None) -> str:
    """Return a rank strictly lower than ``upper`` (used to prepend)."""
    return rank_between(None, upper)


def generate_ranks(count: int, after: str | None = None) -> list[str]:
    """Generate ``count`` ascending ranks continuing after ``after``."""
    ranks = []
    previous = after
    for _ in range(count):
        previous = next_rank(previous)
        ranks.append(previous)
    return ranks


def is_valid_rank(rank: str) -> bool:
    """Return True when ``rank`` is a well-formed rank token."""
    return bool(_RANK_PATTERN.match(rank))
