"""
Clubhouse - authentication, staff users and class enrollment for gym clubs.
"""

__version__ = "0.1.0"
