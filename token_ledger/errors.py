"""
Ledger Error Codes

Closed enumeration of every caller-visible failure the ledger can report.
The numeric values are stable and shared with hosting shells.
"""

from enum import IntEnum


class LedgerError(IntEnum):
    """Error codes returned inside Err results"""
    UNAUTHORIZED = 100
    PAUSED = 101              # Generic pause code, reserved
    INVALID_AMOUNT = 102
    INVALID_RECIPIENT = 103
    INVALID_MINTER = 104
    ALREADY_REGISTERED = 105
    METADATA_TOO_LONG = 106
    INSUFFICIENT_BALANCE = 107
    INVALID_MEMO = 108
    TRANSFER_PAUSED = 109
    BURN_PAUSED = 110
    MINT_PAUSED = 111
    NOT_OWNER = 112           # Reserved
    INVALID_URI = 113

    @property
    def description(self) -> str:
        """Human readable description of the error"""
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    LedgerError.UNAUTHORIZED: "Caller is not authorized for this operation",
    LedgerError.PAUSED: "Ledger is paused",
    LedgerError.INVALID_AMOUNT: "Amount must be a positive integer",
    LedgerError.INVALID_RECIPIENT: "Recipient is the reserved sentinel identity",
    LedgerError.INVALID_MINTER: "Caller is not an active minter",
    LedgerError.ALREADY_REGISTERED: "Account already has a minter registry entry",
    LedgerError.METADATA_TOO_LONG: "Mint metadata exceeds the maximum length",
    LedgerError.INSUFFICIENT_BALANCE: "Balance is lower than the requested amount",
    LedgerError.INVALID_MEMO: "Transfer memo exceeds the maximum length",
    LedgerError.TRANSFER_PAUSED: "Transfers are paused",
    LedgerError.BURN_PAUSED: "Burns are paused",
    LedgerError.MINT_PAUSED: "Minting is paused",
    LedgerError.NOT_OWNER: "Caller is not the owner",
    LedgerError.INVALID_URI: "Token URI exceeds the maximum length",
}


class LedgerOperationError(Exception):
    """Raised when an Err result is unwrapped"""

    def __init__(self, code: LedgerError):
        self.code = code
        super().__init__(f"{code.name} ({int(code)}): {code.description}")
