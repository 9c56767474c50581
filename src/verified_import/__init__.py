"""
Verified bulk import into a remote analytics store

Components:
- matching: matching-column selection
- cursor: RowID cursor store, boundary probe and pre-import sync
- verification: sent-versus-received reconciliation
- rollback: trial rollback and per-mode rollback rules
- importer: chunked import and the verified import session
- remote: destination capabilities and filter expressions
- report: verification reports

Usage:
    from verified_import.importer import ImportSession
    from verified_import.cursor import RowCursorStore
"""

__version__ = "1.0.0"
__all__ = ["config", "cursor", "errors", "importer", "matching", "remote", "report", "rollback", "verification"]
