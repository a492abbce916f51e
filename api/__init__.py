"""
HTTP layer: error handlers and middleware.
"""
