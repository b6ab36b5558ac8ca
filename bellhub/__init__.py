"""Building-wide bell and announcement dispatch service."""
