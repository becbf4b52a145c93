"""
Entry point for running calsync as a module.

Usage:
    python -m calsync --help
    python -m calsync sync --account personal
    python -m calsync daemon start
"""

from calsync.cli import cli

if __name__ == "__main__":
    cli()
