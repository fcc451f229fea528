"""Command-line adapter over the engine."""
