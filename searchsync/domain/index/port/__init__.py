"""Index domain ports."""
