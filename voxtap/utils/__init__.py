"""Utility modules for voxtap."""
