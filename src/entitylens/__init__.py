"""Embedding-based entity resolution: preparation, vector search, scoring, clustering."""
