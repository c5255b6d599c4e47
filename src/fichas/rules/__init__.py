"""Game rules: roll resolution, derived stats and identifiers."""
