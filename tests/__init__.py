"""
Marine console test suite.

This package contains:
- unit/: Unit tests (fake backend over httpx.MockTransport, no network)
- integration/: Integration tests (assembled Console with a queue-fed push channel)
"""
