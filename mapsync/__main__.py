"""Entry point for ``python -m mapsync``."""

from mapsync.cli import app

if __name__ == "__main__":
    app()
