"""Domain services backing the dashboard API."""
