"""Kernel-style formatted output: a small printf and digit helpers."""

from __future__ import annotations

_DIGITS = "0123456789abcdef"
_U64 = 1 << 64


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _int64(value: int) -> int:
    value &= _U64 - 1
    return value - _U64 if value & (1 << 63) else value


def _printint(value: int, base: int, signed: bool) -> str:
    negative = signed and value < 0
    x = -value if negative else value % _U64
    digits = [_DIGITS[x % base]]
    x //= base
    while x:
        digits.append(_DIGITS[x % base])
        x //= base
    if negative:
        digits.append("-")
    return "".join(reversed(digits))


# conversion -> (argument width, base, signed)
_INTEGER_CONVERSIONS = {
    "d": (_int32, 10, True),
    "ld": (_int64, 10, True),
    "lld": (_int64, 10, True),
    "u": (_int32, 10, False),
    "lu": (_int64, 10, False),
    "llu": (_int64, 10, False),
    "x": (_int32, 16, False),
    "lx": (_int64, 16, False),
    "llx": (_int64, 16, False),
}


def _format_string(arg) -> str:
    if arg is None:
        return "(null)"
    if isinstance(arg, (bytes, bytearray)):
        return bytes(arg).split(b"\0", 1)[0].decode("latin-1")
    return str(arg)


def kformat(fmt: str, *args) -> str:
    """Format like the kernel printf: %d %u %x (with l/ll), %p, %s and %%."""
    out: list[str] = []
    values = iter(args)

    def next_arg():
        try:
            return next(values)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    i = 0
    while i < len(fmt):
        ch = fmt[i]
        i += 1
        if ch != "%":
            out.append(ch)
            continue
        if i >= len(fmt):
            break
        spec = next(
            (s for s in (fmt[i:i + 3], fmt[i:i + 2], fmt[i:i + 1]) if s in _INTEGER_CONVERSIONS),
            None,
        )
        if spec is not None:
            width, base, signed = _INTEGER_CONVERSIONS[spec]
            out.append(_printint(width(next_arg()), base, signed))
            i += len(spec)
            continue
        c0 = fmt[i]
        i += 1
        if c0 == "p":
            out.append("0x" + format(next_arg() % _U64, "016x"))
        elif c0 == "s":
            out.append(_format_string(next_arg()))
        elif c0 == "%":
            out.append("%")
        else:
            # Unknown sequences are echoed to draw attention.
            out.append("%" + c0)
    return "".join(out)


def format_hex_byte(byte: int) -> str:
    """Two lower-case hex digits of a byte."""
    b = byte & 0xFF
    return _DIGITS[b >> 4] + _DIGITS[b & 0xF]


def format_dec(n: int) -> str:
    """Decimal digits of ``n``, with a leading minus when negative."""
    return "-" + format_dec(-n) if n < 0 else str(n)