"""Helper registry and built-in helpers.

Helpers are pure functions registered by name. A helper flagged
``needs_clock`` receives the run's fixed instant as its first argument;
no helper reads the wall clock or performs I/O.

Built-ins:
  dates    today addDays addMonths addYears formatDate
  numbers  formatInteger formatPercent formatCurrency formatEuro formatDollar
           formatPound formatNumber numberToWords round
  math     add subtract multiply divide modulo power
  strings  capitalize capitalizeWords upper lower titleCase kebabCase
           snakeCase camelCase pascalCase truncate clean pluralize padStart
           padEnd contains replaceAll initials
  logic    eq neq gt lt and or not default
"""
from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class HelperEntry:
    func: Callable[..., Any]
    needs_clock: bool = False


@dataclass(frozen=True, slots=True)
class HelperRegistry:
    """Immutable ``name -> HelperEntry`` mapping.

    ``with_helper`` / ``with_helpers`` return a new registry, so a single
    registry can be shared by documents resolved concurrently.
    """
    _helpers: Mapping[str, HelperEntry] = field(default_factory=lambda: MappingProxyType({}))

    def __contains__(self, name: object) -> bool:
        return name in self._helpers

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._helpers))

    def __len__(self) -> int:
        return len(self._helpers)

    def get(self, name: str) -> HelperEntry | None:
        return self._helpers.get(name)

    def with_helper(
        self, name: str, func: Callable[..., Any], *, needs_clock: bool = False,
    ) -> HelperRegistry:
        if not name or not name[0].isalpha():
            raise ValueError(f"Invalid helper name: {name!r}")
        merged = dict(self._helpers)
        merged[name] = HelperEntry(func, needs_clock)
        return HelperRegistry(MappingProxyType(merged))

    def with_helpers(self, helpers: Mapping[str, Callable[..., Any] | HelperEntry]) -> HelperRegistry:
        merged = dict(self._helpers)
        for name, func in helpers.items():
            merged[name] = func if isinstance(func, HelperEntry) else HelperEntry(func)
        return HelperRegistry(MappingProxyType(merged))


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

def to_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        return float(value.replace(",", "").strip())
    raise ValueError(f"Not a number: {value!r}")


def to_date(value: Any) -> date:
    """Accept a date, a datetime or a parseable date string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        return date_parser.parse(value.strip()).date()
    raise ValueError(f"Not a date: {value!r}")


def _clean_number(n: float) -> int | float:
    return int(n) if n.is_integer() else n


def to_display(value: Any, date_format: str = "YYYY-MM-DD") -> str:
    """Render a metadata or helper value as document text."""
    match value:
        case None:
            return ""
        case bool():
            return "true" if value else "false"
        case float() if value.is_integer():
            return str(int(value))
        case datetime() | date():
            return format_date(value, date_format)
        case list() | tuple():
            return ", ".join(to_display(v, date_format) for v in value)
        case _:
            return str(value)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_MONTHS_ES = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)
_DAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

DATE_FORMATS: dict[str, str] = {
    "iso": "YYYY-MM-DD",
    "us": "MM/DD/YYYY",
    "eu": "DD/MM/YYYY",
    "european": "DD/MM/YYYY",
    "long": "MMMM D, YYYY",
    "short": "MMM D, YYYY",
    "full": "MMMM Do, YYYY",
    "legal": "Do day of MMMM, YYYY",
    "formal": "dddd, MMMM Do, YYYY",
    "spanish": "D de MMMMES de YYYY",
    "year": "YYYY",
    "month_year": "MMMM YYYY",
}

# Longest tokens first; the short ones only match as whole words.
_DATE_TOKEN_RE = re.compile(
    r"MMMMES|YYYY|MMMM|dddd|MMM|ddd|\bYY\b|\bMM\b|\bDD\b|\bDo\b|\bM\b|\bD\b"
)


_ORDINAL_SUFFIXES: dict[int, str] = {1: "st", 2: "nd", 3: "rd"}


def ordinal(n: int) -> str:
    if 11 <= n % 100 <= 13:
        return f"{n}th"
    return f"{n}{_ORDINAL_SUFFIXES.get(n % 10, 'th')}"


def format_date(value: Any, fmt: str = "YYYY-MM-DD") -> str:
    """Format with YYYY YY MMMM MMMMES MMM MM M DD D Do dddd ddd, or a named format."""
    d = to_date(value)
    pattern = DATE_FORMATS.get(fmt.lower(), fmt) if fmt else "YYYY-MM-DD"
    values = {
        "YYYY": f"{d.year:04d}",
        "YY": f"{d.year % 100:02d}",
        "MMMMES": _MONTHS_ES[d.month - 1],
        "MMMM": _MONTHS[d.month - 1],
        "MMM": _MONTHS[d.month - 1][:3],
        "MM": f"{d.month:02d}",
        "M": str(d.month),
        "DD": f"{d.day:02d}",
        "D": str(d.day),
        "Do": ordinal(d.day),
        "dddd": _DAYS[d.weekday()],
        "ddd": _DAYS[d.weekday()][:3],
    }
    return _DATE_TOKEN_RE.sub(lambda m: values[m.group()], pattern)


def _today(now: datetime) -> date:
    return now.date()


def add_days(value: Any, days: Any) -> date:
    return to_date(value) + relativedelta(days=int(to_number(days)))


def add_months(value: Any, months: Any) -> date:
    return to_date(value) + relativedelta(months=int(to_number(months)))


def add_years(value: Any, years: Any) -> date:
    return to_date(value) + relativedelta(years=int(to_number(years)))


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

_CURRENCY_SYMBOLS: dict[str, str] = {"EUR": "€", "USD": "$", "GBP": "£"}


def _group(digits: str, separator: str = ",") -> str:
    return re.sub(r"\B(?=(\d{3})+(?!\d))", separator, digits)


def format_integer(value: Any, separator: str = ",") -> str:
    return _group(str(math.floor(to_number(value))), separator)


def format_number(value: Any, decimals: Any = 2, decimal_sep: str = ".", thousand_sep: str = ",") -> str:
    whole, _, frac = f"{to_number(value):.{int(to_number(decimals))}f}".partition(".")
    whole = _group(whole, thousand_sep)
    return f"{whole}{decimal_sep}{frac}" if frac else whole


def format_percent(value: Any, decimals: Any = 2, symbol: Any = True) -> str:
    formatted = f"{to_number(value):.{int(to_number(decimals))}f}"
    return f"{formatted}%" if symbol else formatted


def format_currency(value: Any, currency: str = "EUR", decimals: Any = 2) -> str:
    """EUR renders as ``1,234.56 €``; other currencies as ``$1,234.56``."""
    formatted = format_number(value, decimals)
    code = str(currency).upper()
    symbol = _CURRENCY_SYMBOLS.get(code, code)
    if code == "EUR":
        return f"{formatted} {symbol}"
    return f"{symbol}{formatted}"


_ONES = ("", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine")
_TEENS = (
    "ten", "eleven", "twelve", "thirteen", "fourteen",
    "fifteen", "sixteen", "seventeen", "eighteen", "nineteen",
)
_TENS = ("", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety")
_SCALES = ((1_000_000_000, "billion"), (1_000_000, "million"), (1_000, "thousand"))


def _hundreds(n: int) -> list[str]:
    words: list[str] = []
    if n >= 100:
        words += [_ONES[n // 100], "hundred"]
        n %= 100
    if n >= 20:
        words.append(_TENS[n // 10])
        n %= 10
    elif n >= 10:
        words.append(_TEENS[n - 10])
        n = 0
    if n:
        words.append(_ONES[n])
    return words


def _int_words(n: int) -> list[str]:
    words: list[str] = []
    for scale, name in _SCALES:
        if n >= scale:
            words += _int_words(n // scale) + [name]
            n %= scale
    return words + _hundreds(n)


def number_to_words(value: Any) -> str:
    """``1234.5`` -> ``one thousand two hundred thirty four and fifty cents``."""
    n = to_number(value)
    if n == 0:
        return "zero"
    if n < 0:
        return "negative " + number_to_words(-n)
    whole, cents = divmod(round(n * 100), 100)
    words = _int_words(whole) if whole else ["zero"]
    if cents:
        words += ["and", *_hundreds(cents), "cents"]
    return " ".join(words)


def round_number(value: Any, decimals: Any = 0) -> int | float:
    return _clean_number(round(to_number(value), int(to_number(decimals))))


# ---------------------------------------------------------------------------
# Math
# ---------------------------------------------------------------------------

def _arith(op: Callable[[float, float], float]) -> Callable[[Any, Any], int | float]:
    def helper(a: Any, b: Any) -> int | float:
        return _clean_number(float(op(to_number(a), to_number(b))))
    return helper


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------

_SMALL_WORDS = frozenset({
    "a", "an", "and", "as", "at", "but", "by", "for", "if", "in", "nor",
    "of", "on", "or", "so", "the", "to", "up", "yet",
})


def capitalize(value: Any) -> str:
    s = to_display(value)
    return s[:1].upper() + s[1:].lower()


def capitalize_words(value: Any) -> str:
    return " ".join(capitalize(w) for w in to_display(value).split(" "))


def title_case(value: Any) -> str:
    words = to_display(value).split(" ")
    out: list[str] = []
    for i, word in enumerate(words):
        if 0 < i < len(words) - 1 and word.lower() in _SMALL_WORDS:
            out.append(word.lower())
        else:
            out.append(capitalize(word))
    return " ".join(out)


def _split_words(value: Any) -> list[str]:
    s = re.sub(r"([a-z])([A-Z])", r"\1 \2", to_display(value))
    s = re.sub(r"([A-Z])([A-Z][a-z])", r"\1 \2", s)
    return [w for w in re.split(r"[\s\-_]+", s) if w]


def kebab_case(value: Any) -> str:
    return "-".join(w.lower() for w in _split_words(value))


def snake_case(value: Any) -> str:
    return "_".join(w.lower() for w in _split_words(value))


def camel_case(value: Any) -> str:
    words = _split_words(value)
    return "".join(w.lower() if i == 0 else capitalize(w) for i, w in enumerate(words))


def pascal_case(value: Any) -> str:
    return "".join(capitalize(w) for w in _split_words(value))


def truncate(value: Any, length: Any, suffix: str = "...") -> str:
    s, n = to_display(value), int(to_number(length))
    if len(s) <= n:
        return s
    return s[: max(n - len(suffix), 0)] + suffix


def clean(value: Any) -> str:
    return " ".join(to_display(value).split())


_PLURAL_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"s$", re.I), "s"),
    (re.compile(r"([^aeiou])y$", re.I), r"\1ies"),
    (re.compile(r"(x|z|sh|ch)$", re.I), r"\1es"),
)


def pluralize(word: Any, count: Any = 2, plural: Any = None) -> str:
    """Return ``word`` when count == 1, else ``plural`` or an English plural."""
    w = to_display(word)
    if to_number(count) == 1:
        return w
    if isinstance(plural, str) and plural:
        return plural
    for pattern, repl in _PLURAL_RULES:
        if pattern.search(w):
            return pattern.sub(repl, w)
    return w + "s"


def pad_start(value: Any, length: Any, char: str = " ") -> str:
    return to_display(value).rjust(int(to_number(length)), (char or " ")[0])


def pad_end(value: Any, length: Any, char: str = " ") -> str:
    return to_display(value).ljust(int(to_number(length)), (char or " ")[0])


def contains(value: Any, substring: Any, case_sensitive: Any = False) -> bool:
    s, sub = to_display(value), to_display(substring)
    if not s or not sub:
        return False
    return sub in s if case_sensitive else sub.lower() in s.lower()


def replace_all(value: Any, search: Any, replacement: Any) -> str:
    return to_display(value).replace(to_display(search), to_display(replacement))


def initials(value: Any) -> str:
    return "".join(w[0].upper() for w in to_display(value).split() if w)


# ---------------------------------------------------------------------------
# Default registry
# ---------------------------------------------------------------------------

_BUILTINS: dict[str, Callable[..., Any]] = {
    "addDays": add_days,
    "addMonths": add_months,
    "addYears": add_years,
    "formatDate": format_date,
    "formatInteger": format_integer,
    "formatNumber": format_number,
    "formatPercent": format_percent,
    "formatCurrency": format_currency,
    "formatEuro": lambda v, d=2: format_currency(v, "EUR", d),
    "formatDollar": lambda v, d=2: format_currency(v, "USD", d),
    "formatPound": lambda v, d=2: format_currency(v, "GBP", d),
    "numberToWords": number_to_words,
    "round": round_number,
    "add": _arith(lambda a, b: a + b),
    "subtract": _arith(lambda a, b: a - b),
    "multiply": _arith(lambda a, b: a * b),
    "divide": _arith(lambda a, b: a / b),
    "modulo": _arith(lambda a, b: a % b),
    "power": _arith(lambda a, b: a ** b),
    "capitalize": capitalize,
    "capitalizeWords": capitalize_words,
    "upper": lambda v: to_display(v).upper(),
    "lower": lambda v: to_display(v).lower(),
    "titleCase": title_case,
    "kebabCase": kebab_case,
    "snakeCase": snake_case,
    "camelCase": camel_case,
    "pascalCase": pascal_case,
    "truncate": truncate,
    "clean": clean,
    "pluralize": pluralize,
    "padStart": pad_start,
    "padEnd": pad_end,
    "contains": contains,
    "replaceAll": replace_all,
    "initials": initials,
    "eq": lambda a, b: a == b,
    "neq": lambda a, b: a != b,
    "gt": lambda a, b: to_number(a) > to_number(b),
    "lt": lambda a, b: to_number(a) < to_number(b),
    "and": lambda *args: all(args),
    "or": lambda *args: any(args),
    "not": lambda a: not a,
    "default": lambda value, fallback: fallback if value in (None, "") else value,
}


def default_registry() -> HelperRegistry:
    """Registry pre-populated with every built-in helper."""
    return HelperRegistry().with_helpers(_BUILTINS).with_helper("today", _today, needs_clock=True)
