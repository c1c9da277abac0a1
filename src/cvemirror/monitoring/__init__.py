"""
Monitoring and observability components for CVE Mirror.

This module contains:
- Health monitoring
- Metrics collection
- HTTP query API
"""
