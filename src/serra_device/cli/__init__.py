"""Command-line entrypoints for the device agent."""
