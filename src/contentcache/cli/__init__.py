"""
Command-line interface for the content cache.
"""
