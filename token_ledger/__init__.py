"""
Token Ledger

A single-asset fungible-token ledger with role-gated minting, holder-driven
transfers and burns, a global pause switch, and a hash-chained audit trail.
"""

__version__ = "1.0.0"
