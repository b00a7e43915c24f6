"""Core line-item synchronization components."""
