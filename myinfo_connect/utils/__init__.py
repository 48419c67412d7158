"""Configuration, errors and logging helpers."""
