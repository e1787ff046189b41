"""Scrape ecomdash orders and reports into Google Sheets."""

__version__ = "1.0.0"
