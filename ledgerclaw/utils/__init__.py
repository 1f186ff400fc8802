"""
Shared utilities: configuration, logging, secrets, paths and errors.
"""
