"""Race timing: stopwatch races, finisher ledgers and CSV results."""

__version__ = "0.1.0"
