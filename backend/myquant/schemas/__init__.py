# backend/myquant/schemas/__init__.py
"""
Request/response and pipeline payload schemas.
Database documents live in myquant.db.schemas.
"""
