"""
Serve a directory tree over HTTP(S) with autoindex listings.
"""
__version__ = "0.1.0"
