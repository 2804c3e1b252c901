"""Posturography report analyzer backend."""
