"""Runtimes the harness executes instructions in."""
