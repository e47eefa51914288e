"""Geo lookup accelerator: cache-aside coordination in front of a mapping provider."""
