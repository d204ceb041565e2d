"""Dialogue Forge engine packages."""
