"""Test-only helpers shared across the suite."""
