"""
HTTP surface helpers: dependencies and middlewares.
"""
