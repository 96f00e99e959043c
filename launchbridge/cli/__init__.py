"""Command line interface for launchbridge."""
