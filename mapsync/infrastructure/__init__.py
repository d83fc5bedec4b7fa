"""Concrete collaborators: table adapters, key-value stores and a headless map."""

from mapsync.infrastructure.map_host import SimulatedMapHost

__all__ = ["SimulatedMapHost"]
