"""
Caseload: tabular ingestion of case-management exports.

This package streams CSV and XLSX exports, maps their headers onto a fixed
canonical schema, and loads them into a relational store with full-replace
semantics followed by a tolerant date-typing pass.
"""

from importlib.metadata import version

__version__ = version("caseload")

__all__ = ["__version__"]
