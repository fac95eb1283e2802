"""Command line interface for race-control."""
