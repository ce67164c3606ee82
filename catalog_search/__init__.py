"""Faceted search, ranking, trending and comparison over a subject catalog."""
