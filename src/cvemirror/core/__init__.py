"""
Core functionality for CVE Mirror.

This module contains the main processing components:
- NVD upstream client
- Record normalization
- Sync engine and scheduler
- Filter compilation and query execution
- SQLite document store
"""
