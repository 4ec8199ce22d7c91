"""Enums for alert conditions."""
from enum import Enum


class Condition(str, Enum):
    ABOVE = "above"
    BELOW = "below"

    def is_met(self, price, target):
        """Both comparisons include the boundary: price == target triggers."""
        if self is Condition.ABOVE:
            return price >= target
        return price <= target
