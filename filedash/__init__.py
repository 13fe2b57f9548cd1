"""
filedash: user accounts, blob-backed file management and per-user dashboard
layout preferences behind a FastAPI service.
"""
