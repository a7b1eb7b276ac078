"""Bookcase - Personal Book Catalog Package

This package contains the core application modules including:
- Catalog management logic (catalog.py)
- Data models (book.py)
- Persistence layer (storage.py)
- CLI interface (cli.py)
"""

__version__ = "1.0.0"
