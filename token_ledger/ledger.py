"""
Token Ledger State Machine

Single-asset fungible-token ledger. One TokenLedger owns the whole state
(balances, minter registry, mint records, counters and configuration) and
applies every operation atomically: validation runs in a fixed order, the
first failing check returns its error code, and a rejected call leaves the
state untouched.

Accepted operations are written through to the storage backend, together
with their audit event, inside a single storage transaction before the
in-memory state is updated.
"""

import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from .audit import AuditEventType, AuditTrail
from .config import LedgerConfig, get_config
from .errors import LedgerError
from .logging_config import get_logger, log_action
from .result import Err, Ok, Result
from .storage import InMemoryStorage, StorageInterface


MAX_METADATA_LENGTH = 500
MAX_MEMO_LENGTH = 34
MAX_URI_LENGTH = 256

SETTINGS_TABLE = "ledger_settings"
BALANCES_TABLE = "balances"
MINTERS_TABLE = "minters"
MINT_RECORDS_TABLE = "mint_records"
SETTINGS_ID = "ledger"

logger = get_logger("token_ledger.ledger")

Clock = Callable[[], int]


def wall_clock_millis() -> int:
    """Default logical clock: milliseconds since the epoch"""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class MintRecord:
    """Immutable audit entry written once per successful mint"""
    sequence_id: int
    amount: int
    recipient: str
    metadata: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sequence_id': self.sequence_id,
            'amount': self.amount,
            'recipient': self.recipient,
            'metadata': self.metadata,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MintRecord':
        return cls(
            sequence_id=int(data['sequence_id']),
            amount=int(data['amount']),
            recipient=data['recipient'],
            metadata=data['metadata'],
            timestamp=int(data['timestamp']),
        )


@dataclass
class LedgerState:
    """The single aggregate holding all mutable ledger state"""
    admin: str
    token_name: str
    token_symbol: str
    token_decimals: int
    token_uri: Optional[str] = None
    paused: bool = False
    total_supply: int = 0
    mint_counter: int = 0
    balances: Dict[str, int] = field(default_factory=dict)
    minters: Dict[str, bool] = field(default_factory=dict)
    mint_records: Dict[int, MintRecord] = field(default_factory=dict)

    SETTINGS_FIELDS = (
        'admin', 'token_name', 'token_symbol', 'token_decimals', 'token_uri',
        'paused', 'total_supply', 'mint_counter',
    )

    def copy(self) -> 'LedgerState':
        """Independent copy; mint records are immutable so they are shared"""
        return replace(
            self,
            balances=dict(self.balances),
            minters=dict(self.minters),
            mint_records=dict(self.mint_records),
        )

    def settings(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.SETTINGS_FIELDS}


@dataclass
class _Delta:
    """State changes produced by one accepted operation"""
    settings: Dict[str, Any] = field(default_factory=dict)
    balances: Dict[str, int] = field(default_factory=dict)
    minters: Dict[str, bool] = field(default_factory=dict)
    mint_record: Optional[MintRecord] = None


def _is_valid_amount(amount: Any) -> bool:
    # bool is an int subclass but never a meaningful amount
    return isinstance(amount, int) and not isinstance(amount, bool) and amount > 0


class TokenLedger:
    """
    Ledger state machine.

    All public operations take the caller identity explicitly and return a
    Result: Ok(True) for accepted mutations, Ok(value) for queries, and
    Err(LedgerError) for rejected calls.
    """

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        storage: Optional[StorageInterface] = None,
        audit_trail: Optional[AuditTrail] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or get_config()
        self.storage = storage or InMemoryStorage()
        self.clock = clock or wall_clock_millis
        self.sentinel_recipient = self.config.sentinel_recipient
        if self.config.enable_audit_logging:
            self.audit = audit_trail or AuditTrail(self.storage)
        else:
            self.audit = None
        self._lock = threading.RLock()
        self._state = self._load_or_initialize()

    # Initialization and persistence

    def _load_or_initialize(self) -> LedgerState:
        settings = self.storage.load(SETTINGS_TABLE, SETTINGS_ID)
        if settings is not None:
            state = LedgerState(**settings)
            for row in self.storage.load_all(BALANCES_TABLE):
                state.balances[row['account']] = int(row['amount'])
            for row in self.storage.load_all(MINTERS_TABLE):
                state.minters[row['account']] = bool(row['is_minter'])
            for row in self.storage.load_all(MINT_RECORDS_TABLE):
                record = MintRecord.from_dict(row)
                state.mint_records[record.sequence_id] = record
            logger.info(
                "Resumed ledger from storage: supply=%s holders=%s mints=%s",
                state.total_supply, len(state.balances), state.mint_counter
            )
            return state

        initial_admin = self.config.initial_admin
        state = LedgerState(
            admin=initial_admin,
            token_name=self.config.token_name,
            token_symbol=self.config.token_symbol,
            token_decimals=self.config.token_decimals,
            token_uri=self.config.token_uri,
        )
        with self.storage.atomic():
            self.storage.save(SETTINGS_TABLE, SETTINGS_ID, state.settings())
            self.storage.save(MINTERS_TABLE, initial_admin, {'account': initial_admin, 'is_minter': True})
            if self.audit:
                self.audit.log_event(
                    AuditEventType.LEDGER_INITIALIZED, "ledger", SETTINGS_ID,
                    metadata={'admin': initial_admin, 'token_symbol': state.token_symbol},
                    caller=initial_admin
                )
        state.minters[initial_admin] = True
        logger.info("Initialized ledger %s with admin %s", state.token_symbol, initial_admin)
        return state

    def _persist(self, delta: _Delta) -> None:
        if delta.settings:
            settings = self._state.settings()
            settings.update(delta.settings)
            self.storage.save(SETTINGS_TABLE, SETTINGS_ID, settings)
        for account, amount in delta.balances.items():
            self.storage.save(BALANCES_TABLE, account, {'account': account, 'amount': amount})
        for account, flag in delta.minters.items():
            self.storage.save(MINTERS_TABLE, account, {'account': account, 'is_minter': flag})
        if delta.mint_record is not None:
            record = delta.mint_record
            self.storage.save(MINT_RECORDS_TABLE, str(record.sequence_id), record.to_dict())

    def _apply(self, delta: _Delta) -> None:
        for name, value in delta.settings.items():
            setattr(self._state, name, value)
        self._state.balances.update(delta.balances)
        self._state.minters.update(delta.minters)
        if delta.mint_record is not None:
            self._state.mint_records[delta.mint_record.sequence_id] = delta.mint_record

    def _commit(self, action: str, caller: str, delta: _Delta,
                event_type: AuditEventType, entity_type: str, entity_id: str,
                metadata: Dict[str, Any]) -> Ok:
        """Persist and apply an accepted operation as a single unit"""
        with self.storage.atomic():
            self._persist(delta)
            if self.audit:
                self.audit.log_event(event_type, entity_type, entity_id,
                                     metadata=metadata, caller=caller)
        self._apply(delta)
        log_action(logger, "info", f"{action} accepted", caller=caller,
                   action=action, resource=f"{entity_type}:{entity_id}", extra=metadata)
        return Ok(True)

    def _reject(self, action: str, caller: str, code: LedgerError) -> Err:
        log_action(logger, "warning", f"{action} rejected: {code.name}", caller=caller,
                   action=action, extra={'error': int(code)})
        return Err(code)

    # Queries

    def name(self) -> Ok[str]:
        return Ok(self._state.token_name)

    def symbol(self) -> Ok[str]:
        return Ok(self._state.token_symbol)

    def decimals(self) -> Ok[int]:
        return Ok(self._state.token_decimals)

    def total_supply(self) -> Ok[int]:
        with self._lock:
            return Ok(self._state.total_supply)

    def balance_of(self, account: str) -> Ok[int]:
        with self._lock:
            return Ok(self._state.balances.get(account, 0))

    def token_uri(self) -> Ok[Optional[str]]:
        with self._lock:
            return Ok(self._state.token_uri)

    def is_paused(self) -> Ok[bool]:
        with self._lock:
            return Ok(self._state.paused)

    def is_minter(self, account: str) -> Ok[bool]:
        with self._lock:
            return Ok(self._state.minters.get(account, False))

    def mint_record(self, sequence_id: int) -> Ok[Optional[MintRecord]]:
        with self._lock:
            return Ok(self._state.mint_records.get(sequence_id))

    def admin(self) -> Ok[str]:
        with self._lock:
            return Ok(self._state.admin)

    def mint_counter(self) -> Ok[int]:
        with self._lock:
            return Ok(self._state.mint_counter)

    def mint_records(self, recipient: Optional[str] = None) -> Ok[List[MintRecord]]:
        """Mint records in sequence order, optionally for one recipient"""
        with self._lock:
            records = sorted(self._state.mint_records.values(), key=lambda r: r.sequence_id)
        if recipient is not None:
            records = [r for r in records if r.recipient == recipient]
        return Ok(records)

    def holders(self) -> Ok[List[str]]:
        """Accounts that have a balance entry"""
        with self._lock:
            return Ok(list(self._state.balances))

    def snapshot(self) -> LedgerState:
        """Independent copy of the full state, comparable by equality"""
        with self._lock:
            return self._state.copy()

    # Administration

    def set_admin(self, caller: str, new_admin: str) -> Result[bool]:
        with self._lock:
            if caller != self._state.admin:
                return self._reject("set_admin", caller, LedgerError.UNAUTHORIZED)
            return self._commit(
                "set_admin", caller, _Delta(settings={'admin': new_admin}),
                AuditEventType.ADMIN_CHANGED, "ledger", SETTINGS_ID,
                {'previous_admin': self._state.admin, 'new_admin': new_admin}
            )

    def pause(self, caller: str) -> Result[bool]:
        with self._lock:
            if caller != self._state.admin:
                return self._reject("pause", caller, LedgerError.UNAUTHORIZED)
            return self._commit(
                "pause", caller, _Delta(settings={'paused': True}),
                AuditEventType.LEDGER_PAUSED, "ledger", SETTINGS_ID,
                {'was_paused': self._state.paused}
            )

    def unpause(self, caller: str) -> Result[bool]:
        with self._lock:
            if caller != self._state.admin:
                return self._reject("unpause", caller, LedgerError.UNAUTHORIZED)
            return self._commit(
                "unpause", caller, _Delta(settings={'paused': False}),
                AuditEventType.LEDGER_UNPAUSED, "ledger", SETTINGS_ID,
                {'was_paused': self._state.paused}
            )

    def add_minter(self, caller: str, account: str) -> Result[bool]:
        """
        Grant the minter role.

        Any existing registry entry blocks the grant, including a revoked
        (False) one, so a removed minter can never be re-added.
        """
        with self._lock:
            if caller != self._state.admin:
                return self._reject("add_minter", caller, LedgerError.UNAUTHORIZED)
            if account in self._state.minters:
                return self._reject("add_minter", caller, LedgerError.ALREADY_REGISTERED)
            return self._commit(
                "add_minter", caller, _Delta(minters={account: True}),
                AuditEventType.MINTER_ADDED, "minter", account, {'account': account}
            )

    def remove_minter(self, caller: str, account: str) -> Result[bool]:
        with self._lock:
            if caller != self._state.admin:
                return self._reject("remove_minter", caller, LedgerError.UNAUTHORIZED)
            return self._commit(
                "remove_minter", caller, _Delta(minters={account: False}),
                AuditEventType.MINTER_REMOVED, "minter", account,
                {'account': account, 'was_registered': account in self._state.minters}
            )

    def set_token_uri(self, caller: str, new_uri: Optional[str]) -> Result[bool]:
        with self._lock:
            if caller != self._state.admin:
                return self._reject("set_token_uri", caller, LedgerError.UNAUTHORIZED)
            if new_uri is not None and len(new_uri) > MAX_URI_LENGTH:
                return self._reject("set_token_uri", caller, LedgerError.INVALID_URI)
            return self._commit(
                "set_token_uri", caller, _Delta(settings={'token_uri': new_uri}),
                AuditEventType.TOKEN_URI_UPDATED, "ledger", SETTINGS_ID,
                {'token_uri': new_uri}
            )

    # Token operations

    def mint(self, caller: str, amount: int, recipient: str, metadata: str = "") -> Result[bool]:
        """
        Create `amount` new tokens for `recipient` and record the mint.

        Checks, in order: paused, caller is an active minter, positive amount,
        recipient is not the sentinel, metadata length.
        """
        if metadata is None:
            metadata = ""
        with self._lock:
            state = self._state
            if state.paused:
                return self._reject("mint", caller, LedgerError.MINT_PAUSED)
            if not state.minters.get(caller, False):
                return self._reject("mint", caller, LedgerError.INVALID_MINTER)
            if not _is_valid_amount(amount):
                return self._reject("mint", caller, LedgerError.INVALID_AMOUNT)
            if recipient == self.sentinel_recipient:
                return self._reject("mint", caller, LedgerError.INVALID_RECIPIENT)
            if len(metadata) > MAX_METADATA_LENGTH:
                return self._reject("mint", caller, LedgerError.METADATA_TOO_LONG)

            sequence_id = state.mint_counter + 1
            record = MintRecord(
                sequence_id=sequence_id,
                amount=amount,
                recipient=recipient,
                metadata=metadata,
                timestamp=self.clock(),
            )
            delta = _Delta(
                settings={
                    'total_supply': state.total_supply + amount,
                    'mint_counter': sequence_id,
                },
                balances={recipient: state.balances.get(recipient, 0) + amount},
                mint_record=record,
            )
            return self._commit(
                "mint", caller, delta,
                AuditEventType.TOKENS_MINTED, "mint_record", str(sequence_id),
                {'amount': amount, 'recipient': recipient, 'timestamp': record.timestamp}
            )

    def transfer(self, caller: str, amount: int, sender: str, recipient: str,
                 memo: Optional[str] = None) -> Result[bool]:
        """
        Move `amount` from `sender` to `recipient`.

        Only the holder may initiate a transfer. The memo is not stored in
        ledger state; it is passed on to the audit trail.
        """
        with self._lock:
            state = self._state
            if state.paused:
                return self._reject("transfer", caller, LedgerError.TRANSFER_PAUSED)
            if caller != sender:
                return self._reject("transfer", caller, LedgerError.UNAUTHORIZED)
            if not _is_valid_amount(amount):
                return self._reject("transfer", caller, LedgerError.INVALID_AMOUNT)
            if recipient == self.sentinel_recipient:
                return self._reject("transfer", caller, LedgerError.INVALID_RECIPIENT)
            if memo is not None and len(memo) > MAX_MEMO_LENGTH:
                return self._reject("transfer", caller, LedgerError.INVALID_MEMO)
            sender_balance = state.balances.get(sender, 0)
            if sender_balance < amount:
                return self._reject("transfer", caller, LedgerError.INSUFFICIENT_BALANCE)

            balances = {sender: sender_balance - amount}
            # Self-transfers read the already-debited balance
            balances[recipient] = balances.get(recipient, state.balances.get(recipient, 0)) + amount
            return self._commit(
                "transfer", caller, _Delta(balances=balances),
                AuditEventType.TOKENS_TRANSFERRED, "account", sender,
                {'amount': amount, 'sender': sender, 'recipient': recipient, 'memo': memo}
            )

    def burn(self, caller: str, amount: int) -> Result[bool]:
        """Destroy `amount` tokens from the caller's own balance"""
        with self._lock:
            state = self._state
            if state.paused:
                return self._reject("burn", caller, LedgerError.BURN_PAUSED)
            if not _is_valid_amount(amount):
                return self._reject("burn", caller, LedgerError.INVALID_AMOUNT)
            balance = state.balances.get(caller, 0)
            if balance < amount:
                return self._reject("burn", caller, LedgerError.INSUFFICIENT_BALANCE)

            delta = _Delta(
                settings={'total_supply': state.total_supply - amount},
                balances={caller: balance - amount},
            )
            return self._commit(
                "burn", caller, delta,
                AuditEventType.TOKENS_BURNED, "account", caller, {'amount': amount}
            )
