"""Utility functions for upynab."""

from upynab.utils.date_parser import get_date_range, parse_date

__all__ = ["parse_date", "get_date_range"]
