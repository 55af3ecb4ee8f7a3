"""GhostNotes: geospatial reveal engine for location-anchored notes."""

__version__ = "0.1.0"
