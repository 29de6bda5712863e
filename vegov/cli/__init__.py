"""Vegov command line interface."""
