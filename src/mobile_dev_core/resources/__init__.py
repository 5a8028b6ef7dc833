"""Bundled data files (message catalog, config schema)."""
