"""
uireplay - record, replay and visually verify UI interactions.
"""

__version__ = "0.1.0"
