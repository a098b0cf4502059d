"""
conversion.py - Share/Asset Conversion Engine

Pure integer functions translating between asset amounts and share amounts.

Key Formulas:
    shares = assets * total_supply / total_assets      (pool has supply)
    assets = shares * total_assets / total_supply
    shares = assets scaled to share decimals           (empty pool bootstrap)
    value  = assets * rate / RAY                       (yield-skimming)

Rounding always favors the pool: FLOOR when crediting an account, CEIL when
debiting it. A pool with supply but no assets is fully diluted and converts
everything to 0 instead of raising.
"""

from __future__ import annotations

from .core import RAY, Rounding, require_amount


def mul_div(x: int, y: int, denominator: int, rounding: Rounding = Rounding.FLOOR) -> int:
    """
    Compute x * y / denominator exactly, rounded in the given direction.

    Returns 0 when denominator is 0.
    """
    if denominator == 0:
        return 0
    numerator = x * y
    quotient, remainder = divmod(numerator, denominator)
    if rounding is Rounding.CEIL and remainder:
        quotient += 1
    return quotient


def scale_decimals(
    amount: int,
    from_decimals: int,
    to_decimals: int,
    rounding: Rounding = Rounding.FLOOR,
) -> int:
    """
    Rescale an amount between two decimal precisions.

    Scaling up is exact; scaling down rounds in the given direction.
    """
    if to_decimals >= from_decimals:
        return amount * 10 ** (to_decimals - from_decimals)
    return mul_div(amount, 1, 10 ** (from_decimals - to_decimals), rounding)


def convert_to_shares(
    assets: int,
    total_supply: int,
    total_assets: int,
    rounding: Rounding,
    asset_decimals: int = 18,
    share_decimals: int = 18,
) -> int:
    """
    Convert an asset amount to shares at the pool's current ratio.

    Args:
        assets: Asset amount in base units
        total_supply: Current share supply
        total_assets: Current principal basis
        rounding: FLOOR when crediting, CEIL when debiting
        asset_decimals: Native decimals of the asset
        share_decimals: Decimals of the claim token

    Returns:
        Share amount (0 for a fully diluted pool)
    """
    require_amount(assets, "assets")
    if total_supply == 0:
        return scale_decimals(assets, asset_decimals, share_decimals, rounding)
    return mul_div(assets, total_supply, total_assets, rounding)


def convert_to_assets(
    shares: int,
    total_supply: int,
    total_assets: int,
    rounding: Rounding,
    asset_decimals: int = 18,
    share_decimals: int = 18,
) -> int:
    """Convert a share amount to assets; symmetric to convert_to_shares()."""
    require_amount(shares, "shares")
    if total_supply == 0:
        return scale_decimals(shares, share_decimals, asset_decimals, rounding)
    return mul_div(shares, total_assets, total_supply, rounding)


# ============================================================================
# RAY EXCHANGE-RATE HELPERS (yield-skimming)
# ============================================================================

def normalize_rate_to_ray(rate: int, rate_decimals: int) -> int:
    """Rescale an oracle rate expressed with rate_decimals to RAY (27 decimals)."""
    require_amount(rate, "rate")
    return scale_decimals(rate, rate_decimals, 27, Rounding.FLOOR)


def assets_to_value(assets: int, rate_ray: int, rounding: Rounding) -> int:
    """Value of an asset amount at a RAY-scaled rate."""
    return mul_div(assets, rate_ray, RAY, rounding)


def value_to_assets(value: int, rate_ray: int, rounding: Rounding) -> int:
    """Asset amount worth value at a RAY-scaled rate (0 when the rate is 0)."""
    return mul_div(value, RAY, rate_ray, rounding)
