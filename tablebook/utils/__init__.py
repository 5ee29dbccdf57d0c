"""Pure helpers for time slots, prices and order codes."""
