"""
CAPI Relay - Conversion event relay → Facebook Conversions API

A FastAPI-based service that accepts browser conversion events, hashes
personal data, and forwards each event to the Conversions API without
holding up the client's response.
"""

__version__ = "0.1.0"

from .main import app

__all__ = ["app"]
