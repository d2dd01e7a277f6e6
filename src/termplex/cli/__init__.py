"""Command line interface for termplex."""
