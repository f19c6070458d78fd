"""
bumpdash: relays an external bot's /bump on a per-guild timer, with a web dashboard.
"""

__version__ = "1.0.0"
