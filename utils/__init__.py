"""
utils/ - Cross-cutting helpers
==============================
Logging setup and the exception hierarchy shared by every layer.
"""
