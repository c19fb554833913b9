# backend/myquant/services/__init__.py
"""
Service modules for the weekly digest pipeline
"""
