"""Book Catalog - Utilities Package

- Field normalization and validation primitives (validators.py)
- CLI output helpers (ui_helpers.py)
"""
