"""Bundled static evidence checklists, one JSON file per case."""
