"""Configuration, data models and the error taxonomy."""
