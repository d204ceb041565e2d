"""Dialogue Forge: dialogue graph runtime and script tooling."""

__version__ = "0.1.0"

__all__ = ["__version__"]
