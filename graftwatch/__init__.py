"""
GraftWatch - Citizen corruption reporting with live consensus.
"""

__version__ = "0.2.0"
