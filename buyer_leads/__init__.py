"""
Buyer lead intake and management API.
"""

__version__ = "1.0.0"
