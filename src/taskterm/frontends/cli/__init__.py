"""Command line interface for taskterm."""
