"""Domain models for the bookmark tree."""
