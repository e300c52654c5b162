"""Warehouse readers."""
