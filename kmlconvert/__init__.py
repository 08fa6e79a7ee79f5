"""KML/KMZ to GeoJSON conversion with map verification."""

__version__ = "0.1.0"
