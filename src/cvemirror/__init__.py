"""
CVE Mirror

Local mirror of the NVD vulnerability feed. Keeps a SQLite copy of CVE
records in sync with the upstream CVE 2.0 API (full and incremental sync)
and serves them through a filtered, paginated query API.
"""

__version__ = "1.0.0"
__author__ = "CVE Mirror Team"
