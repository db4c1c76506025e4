"""Spreadsheet lead import pipeline: parse, map, validate and commit lead lists."""

__version__ = "0.1.0"
