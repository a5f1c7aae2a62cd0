"""Serra device backend: identity, liveness, config sync and command queue."""

__version__ = "0.1.0"
