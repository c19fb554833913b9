# backend/myquant/routers/__init__.py
"""
Router modules for API endpoints
"""
