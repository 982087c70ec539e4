"""
Backend identity token library.

This library provides:
- Custom token minting with local or delegated signing
- ID token and session cookie verification
- Application default credential resolution
- Logging, telemetry and configuration helpers
"""

__version__ = "1.0.0"
__author__ = "BPT Team"
