"""Command-line interface for Metrum."""
