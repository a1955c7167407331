"""Book Catalog - Core Application Package

This package contains the core application modules including:
- API endpoints (api.py)
- Inventory ledger: catalog and loans (library.py)
- Record validation engine (validation.py)
- CLI interface (main.py)
- Data models (book.py)
"""

__version__ = "1.0.0"
