"""Client implementations, grouped by system type."""
