"""
fichas - rule evaluation and identity resolution for tabletop character sheets.

Rolls d12 checks against character attributes, computes derived stats,
and assigns stable slug identifiers to sheets and their entries.
"""

__version__ = "0.3.0"
