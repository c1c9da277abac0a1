"""
Utility components for CVE Mirror.

This module contains:
- Configuration management
- Error handling
- Rate limiting
- Validation
"""
