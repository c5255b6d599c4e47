"""Command-line interface: configuration, rendering and commands."""
