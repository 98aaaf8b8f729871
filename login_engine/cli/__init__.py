"""Command line interface for the Login Management Engine."""
