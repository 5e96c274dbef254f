"""
Value Formatters for Analytics

Number helpers shared by the aggregator and dashboard consumers.
"""

CURRENCY_SYMBOLS = {
    "MYR": "RM ",
    "SGD": "S$",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


def percentage_change(current: float, previous: float) -> float:
    """
    Percentage change from previous to current.

    0 when both are 0, 100 when only previous is 0.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return ((current - previous) / previous) * 100


def is_increase(current: float, previous: float) -> bool:
    """Ties count as an increase."""
    return current >= previous


def round_rate(value: float, decimals: int = 2) -> float:
    return round(value, decimals)


def get_currency_symbol(currency: str) -> str:
    return CURRENCY_SYMBOLS.get(currency, f"{currency} ")


def format_number(value: float, decimals: int = 0) -> str:
    """Format number with thousands separators and fixed decimals"""
    return f"{value:,.{decimals}f}"


def format_currency(value: float, currency: str = "MYR") -> str:
    """
    Format currency value.

    Args:
        value: Amount to format
        currency: ISO currency code (default: MYR)
    """
    return f"{get_currency_symbol(currency)}{format_number(value, 2)}"


def format_percentage(value: float, decimals: int = 1) -> str:
    """Format a ratio (0.075 -> '7.5%')"""
    return f"{value * 100:.{decimals}f}%"


def format_compact_number(value: float) -> str:
    """Compact axis labels: 1.2k, 3.4M"""
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}k"
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def format_comparison_percentage(change: float) -> str:
    """Signed change with an arrow: '+12.5% ↑', '-3.0% ↓'"""
    sign = "+" if change >= 0 else ""
    arrow = "↑" if change >= 0 else "↓"
    return f"{sign}{change:.1f}% {arrow}"
