"""Storage layer for properties, providers and reviews."""

from .db import Storage, StoreError
from .export import export_csv, export_json
from .query import BuiltQuery, compile_spec

__all__ = [
    "BuiltQuery",
    "Storage",
    "StoreError",
    "compile_spec",
    "export_csv",
    "export_json",
]
