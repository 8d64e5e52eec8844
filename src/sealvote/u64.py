from __future__ import annotations

from sealvote.errors import ArithmeticOverflow

U64_MAX = 2**64 - 1


def is_u64(value: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= U64_MAX


def _require_u64(*values: int) -> None:
    for v in values:
        if not is_u64(v):
            raise ArithmeticOverflow(f"value outside u64 range: {v!r}")


def checked_add(a: int, b: int) -> int:
    _require_u64(a, b)
    out = a + b
    if out > U64_MAX:
        raise ArithmeticOverflow(f"u64 addition overflow: {a} + {b}")
    return out


def checked_mul(a: int, b: int) -> int:
    _require_u64(a, b)
    out = a * b
    if out > U64_MAX:
        raise ArithmeticOverflow(f"u64 multiplication overflow: {a} * {b}")
    return out
