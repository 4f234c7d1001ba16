"""
photoledger Core Module

This module contains the usage accounting logic for photoledger including:
- Entitlement decisions for anonymous leads and authenticated accounts
- The usage ledger and its increment strategies
- Metered billing reports for pay-per-image accounts
- Purchase token encryption for the simulated checkout path

The core module is framework-agnostic apart from the SQLModel tables and
can be used independently of the web interface or the queue client.

Example usage:
    from core.gate import decide
    from core.ledger import UsageLedger
    from core.session_codec import SessionTokenCodec
"""

__version__ = "0.1.0"
__all__ = [
    "gate",
    "ledger",
    "metering",
    "session_codec",
]
