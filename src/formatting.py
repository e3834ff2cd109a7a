LOCALES = {
    "en-IN": {"symbol": "₹", "indian_grouping": True},
    "en-SG": {"symbol": "S$", "indian_grouping": False},
}


def _group_indian(digits: str) -> str:
    # last three digits, then pairs: 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs) + "," + tail


def format_amount(value: float, locale: str = "en-IN", symbol: bool = True) -> str:
    """Two-decimal currency string in the given locale's digit grouping."""
    if locale not in LOCALES:
        raise ValueError(f"unsupported locale {locale!r}, expected one of {tuple(LOCALES)}")
    conf = LOCALES[locale]
    sign = "-" if value < 0 else ""
    whole, frac = f"{abs(value):.2f}".split(".")
    if conf["indian_grouping"]:
        whole = _group_indian(whole)
    else:
        whole = f"{int(whole):,}"
    prefix = conf["symbol"] if symbol else ""
    return f"{sign}{prefix}{whole}.{frac}"
