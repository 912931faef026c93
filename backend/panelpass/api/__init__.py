"""
HTTP surface: FastAPI routers and request helpers.
"""
