"""
Tests for Secure File Store

Test suite for:
- Key derivation and authenticated encryption
- Path sandbox containment
- Integrity ledger and tamper detection
- Record store retries
- Audit logging
- User accounts
- Access-controlled file operations
"""
