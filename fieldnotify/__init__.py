"""Field job notification engine.

Deduplicates, rate-limits and dispatches job notifications so every staff
member hears about a job change once, no matter how many callers observe it.
"""

__version__ = "0.1.0"
