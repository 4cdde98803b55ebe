"""Command-line entrypoints. Not imported by the library modules."""
