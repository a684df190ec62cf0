"""Configuration management for voxtap."""
