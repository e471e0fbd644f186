"""HTTP API for the study pipeline."""
