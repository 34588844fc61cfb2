"""
Branching chat survey bot.
"""

__version__ = "0.1.0"
