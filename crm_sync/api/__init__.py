"""HTTP API for contact resolution and sync runs."""
