"""
Core business logic components.

This package contains the relay's processing components:
- PII hashing
- Conversions API forwarder
- Detached dispatch of forward jobs
"""
