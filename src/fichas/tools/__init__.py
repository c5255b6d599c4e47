"""Dice helpers."""

from .dice import D12, roll_d12, roll_die

__all__ = ["D12", "roll_d12", "roll_die"]
