"""Core gateway modules."""
