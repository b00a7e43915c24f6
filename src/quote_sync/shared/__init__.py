"""Shared infrastructure: errors, logging, observability, pricing I/O."""
