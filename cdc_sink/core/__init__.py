"""Core utilities shared across the CDC event sink: logging and errors."""
