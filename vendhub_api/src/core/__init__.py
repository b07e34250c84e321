"""
Core application utilities: settings, logging, token security and FastAPI
dependencies (tenant extraction, tenant-scoped sessions, role checks).
"""
