"""Measurement engine: fixtures, seeding, simulate-then-commit, amortization, reporting."""
