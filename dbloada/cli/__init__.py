"""Command-line interface for dbloada."""
