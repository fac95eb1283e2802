"""CLI command modules for race-control.

Each module exposes a Typer ``app`` that is mounted on the root application.
"""

__all__ = ["race", "sync"]
