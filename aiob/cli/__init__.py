"""AIOB command-line interface."""
