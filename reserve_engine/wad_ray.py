"""Ray (1e27) and wad (1e18) fixed-point arithmetic with half-up rounding.

Rounding:
    All multiplications and divisions round half-up:
        mul: (a * b + HALF_SCALE) // SCALE
        div: (a * SCALE + b // 2) // b

Range:
    Operands are unsigned. Any intermediate above MAX_UINT256 raises
    ArithmeticOverflow; a zero divisor raises DivisionByZero. Nothing is
    clamped.

Scales are never mixed implicitly: convert with ray_to_wad / wad_to_ray first.
"""
from __future__ import annotations

from .constants import (
    HALF_PERCENTAGE,
    HALF_RAY,
    HALF_WAD,
    MAX_UINT256,
    PERCENTAGE_FACTOR,
    RAY,
    WAD,
    WAD_RAY_RATIO,
)
from .errors import ArithmeticOverflow, DivisionByZero


def _check_operands(op: str, *values: int) -> None:
    for value in values:
        if value < 0 or value > MAX_UINT256:
            raise ArithmeticOverflow(f"{op}: operand out of range", operand=value)


def _mul(op: str, a: int, b: int, scale: int, half: int) -> int:
    _check_operands(op, a, b)
    product = a * b + half
    if product > MAX_UINT256:
        raise ArithmeticOverflow(f"{op}: product overflow", a=a, b=b)
    return product // scale


def _div(op: str, a: int, b: int, scale: int) -> int:
    _check_operands(op, a, b)
    if b == 0:
        raise DivisionByZero(f"{op}: division by zero", a=a)
    numerator = a * scale + b // 2
    if numerator > MAX_UINT256:
        raise ArithmeticOverflow(f"{op}: numerator overflow", a=a, b=b)
    return numerator // b


def wad_mul(a: int, b: int) -> int:
    return _mul("wad_mul", a, b, WAD, HALF_WAD)


def wad_div(a: int, b: int) -> int:
    return _div("wad_div", a, b, WAD)


def ray_mul(a: int, b: int) -> int:
    return _mul("ray_mul", a, b, RAY, HALF_RAY)


def ray_div(a: int, b: int) -> int:
    return _div("ray_div", a, b, RAY)


def percent_mul(value: int, bps: int) -> int:
    """Multiply ``value`` by a basis-point percentage (10000 = 100 %)."""
    return _mul("percent_mul", value, bps, PERCENTAGE_FACTOR, HALF_PERCENTAGE)


def percent_div(value: int, bps: int) -> int:
    """Divide ``value`` by a basis-point percentage (10000 = 100 %)."""
    return _div("percent_div", value, bps, PERCENTAGE_FACTOR)


def ray_to_wad(a: int) -> int:
    """Rescale a ray to a wad, rounding half-up."""
    _check_operands("ray_to_wad", a)
    result, remainder = divmod(a, WAD_RAY_RATIO)
    if remainder >= WAD_RAY_RATIO // 2:
        result += 1
    return result


def wad_to_ray(a: int) -> int:
    _check_operands("wad_to_ray", a)
    result = a * WAD_RAY_RATIO
    if result > MAX_UINT256:
        raise ArithmeticOverflow("wad_to_ray: overflow", a=a)
    return result


def ray_pow(base: int, exponent: int) -> int:
    """Raise a ray to an integer power by repeated squaring.

    Each squaring / multiplication rounds half-up, so the result is within
    one ulp per step of the exact value.
    """
    if exponent < 0:
        raise ValueError(f"ray_pow: negative exponent {exponent}")
    result = base if exponent % 2 else RAY
    exponent //= 2
    while exponent:
        base = ray_mul(base, base)
        if exponent % 2:
            result = ray_mul(result, base)
        exponent //= 2
    return result
