"""Pytest configuration for taskdag tests."""

import os

# Rich reads these on import; tables in CLI output must not wrap or carry colour codes
os.environ.setdefault("COLUMNS", "200")
os.environ.setdefault("LINES", "50")
os.environ.setdefault("TERM", "dumb")
os.environ.setdefault("NO_COLOR", "1")
