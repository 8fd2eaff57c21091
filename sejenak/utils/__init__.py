"""Shared helpers for the Sejenak loyalty engine."""
