"""Shared helpers for timestamps and PR URLs."""

from jules_command.utils.numbers import format_number
from jules_command.utils.pr_url import ParsedPrUrl, parse_pr_url
from jules_command.utils.timestamps import (
    format_timestamp,
    hours_between,
    minutes_between,
    parse_timestamp,
    utc_now,
)

__all__ = [
    "format_number",
    "ParsedPrUrl",
    "parse_pr_url",
    "format_timestamp",
    "hours_between",
    "minutes_between",
    "parse_timestamp",
    "utc_now",
]
