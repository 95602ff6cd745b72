"""Command-line interface for tablemirror."""
