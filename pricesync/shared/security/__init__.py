"""
Security package.

Request throttling for the operator API.
"""
