"""
Test suite for audit module

Tests the hash-chained audit trail, tamper detection, and the events the
ledger records for each accepted operation.
"""

from datetime import datetime, timezone

import pytest

from token_ledger.audit import AuditEvent, AuditEventType, AuditTrail
from token_ledger.config import LedgerConfig
from token_ledger.ledger import TokenLedger
from token_ledger.storage import InMemoryStorage

from identities import ALICE, BOB, DEPLOYER, MINTER


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_hash_roundtrip(self):
        """Test that a stored event still verifies after reloading"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            sequence=1,
            event_type=AuditEventType.TOKENS_MINTED,
            entity_type="mint_record",
            entity_id="1",
            previous_hash="",
            current_hash="",
            metadata={"amount": 10, "recipient": ALICE},
            caller=DEPLOYER
        )
        event.current_hash = event.calculate_hash()

        restored = AuditEvent.from_dict(event.to_dict())
        assert restored.event_type == AuditEventType.TOKENS_MINTED
        assert restored.verify_hash()
        assert restored.current_hash == event.current_hash

    def test_hash_changes_with_content(self):
        now = datetime.now(timezone.utc)
        base = dict(
            id="AUDIT002", created_at=now, updated_at=now, sequence=1,
            event_type=AuditEventType.TOKENS_BURNED, entity_type="account",
            entity_id=ALICE, previous_hash="", current_hash="", metadata={"amount": 5}
        )
        first = AuditEvent(**base)
        second = AuditEvent(**{**base, "metadata": {"amount": 6}})
        assert first.calculate_hash() != second.calculate_hash()


class TestAuditTrail:
    """Test the hash chain"""

    def test_chain_links_events(self):
        trail = AuditTrail(InMemoryStorage())
        first = trail.log_event(AuditEventType.LEDGER_PAUSED, "ledger", "ledger", caller=DEPLOYER)
        second = trail.log_event(AuditEventType.LEDGER_UNPAUSED, "ledger", "ledger", caller=DEPLOYER)

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert trail.get_latest_hash() == second.current_hash
        assert trail.count_events() == 2

    def test_empty_trail(self):
        trail = AuditTrail(InMemoryStorage())
        assert trail.get_latest_hash() is None
        result = trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 0

    def test_tampered_metadata_detected(self):
        """Test that editing a stored event breaks its hash"""
        storage = InMemoryStorage()
        trail = AuditTrail(storage)
        trail.log_event(AuditEventType.TOKENS_MINTED, "mint_record", "1", {"amount": 10})
        event = trail.log_event(AuditEventType.TOKENS_BURNED, "account", ALICE, {"amount": 5})

        data = storage.load(trail.table_name, event.id)
        data["metadata"]["amount"] = 5_000
        storage.save(trail.table_name, event.id, data)

        result = trail.verify_integrity()
        assert not result["valid"]
        assert len(result["hash_errors"]) == 1
        assert result["hash_errors"][0]["event_id"] == event.id

    def test_deleted_event_breaks_chain(self):
        storage = InMemoryStorage()
        trail = AuditTrail(storage)
        trail.log_event(AuditEventType.MINTER_ADDED, "minter", "a")
        middle = trail.log_event(AuditEventType.MINTER_ADDED, "minter", "b")
        trail.log_event(AuditEventType.MINTER_ADDED, "minter", "c")

        storage.delete(trail.table_name, middle.id)

        result = trail.verify_integrity()
        assert not result["valid"]
        assert len(result["chain_breaks"]) == 1

    def test_rolled_back_event_leaves_chain_intact(self):
        """Test that an event logged in a failed transaction disappears"""
        storage = InMemoryStorage()
        trail = AuditTrail(storage)
        first = trail.log_event(AuditEventType.LEDGER_PAUSED, "ledger", "ledger")

        with pytest.raises(RuntimeError):
            with storage.atomic():
                trail.log_event(AuditEventType.LEDGER_UNPAUSED, "ledger", "ledger")
                raise RuntimeError("boom")

        assert trail.count_events() == 1
        assert trail.get_latest_hash() == first.current_hash
        second = trail.log_event(AuditEventType.LEDGER_UNPAUSED, "ledger", "ledger")
        assert second.sequence == 2
        assert trail.verify_integrity()["valid"]

    def test_queries(self):
        trail = AuditTrail(InMemoryStorage())
        trail.log_event(AuditEventType.MINTER_ADDED, "minter", "a")
        trail.log_event(AuditEventType.MINTER_REMOVED, "minter", "a")
        trail.log_event(AuditEventType.MINTER_ADDED, "minter", "b")

        assert len(trail.get_events_for_entity("minter", "a")) == 2
        assert len(trail.get_events_for_entity("minter", "a", limit=1)) == 1
        added = trail.get_events_by_type(AuditEventType.MINTER_ADDED)
        assert [e.entity_id for e in added] == ["a", "b"]
        assert [e.sequence for e in trail.get_all_events()] == [1, 2, 3]
        assert [e.sequence for e in trail.get_all_events(limit=2)] == [2, 3]
        assert trail.get_all_events(limit=0) == []
        assert trail.get_events_by_type(AuditEventType.MINTER_ADDED, limit=0) == []
        assert trail.get_events_for_entity("minter", "a", limit=0) == []
        assert [e.sequence for e in trail.get_all_events(limit=10)] == [1, 2, 3]

        event = added[0]
        assert trail.get_event_by_id(event.id).current_hash == event.current_hash
        assert trail.get_event_by_id("missing") is None


class TestLedgerAuditing:
    """Test the events written by ledger operations"""

    def test_initialization_event(self, ledger):
        events = ledger.audit.get_all_events()
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.LEDGER_INITIALIZED
        assert events[0].caller == DEPLOYER

    def test_operations_are_audited(self, ledger):
        ledger.add_minter(DEPLOYER, MINTER)
        ledger.mint(DEPLOYER, 1_000, ALICE, "reward")
        ledger.transfer(ALICE, 300, ALICE, BOB, "thanks")
        ledger.burn(BOB, 100)
        ledger.remove_minter(DEPLOYER, MINTER)
        ledger.set_token_uri(DEPLOYER, "https://example.com")
        ledger.pause(DEPLOYER)
        ledger.unpause(DEPLOYER)
        ledger.set_admin(DEPLOYER, ALICE)

        types = [e.event_type for e in ledger.audit.get_all_events()]
        assert types == [
            AuditEventType.LEDGER_INITIALIZED,
            AuditEventType.MINTER_ADDED,
            AuditEventType.TOKENS_MINTED,
            AuditEventType.TOKENS_TRANSFERRED,
            AuditEventType.TOKENS_BURNED,
            AuditEventType.MINTER_REMOVED,
            AuditEventType.TOKEN_URI_UPDATED,
            AuditEventType.LEDGER_PAUSED,
            AuditEventType.LEDGER_UNPAUSED,
            AuditEventType.ADMIN_CHANGED,
        ]
        assert ledger.audit.verify_integrity()["valid"]

    def test_transfer_event_carries_memo(self, ledger):
        """Test that the memo reaches the audit trail"""
        ledger.mint(DEPLOYER, 100, ALICE, "")
        ledger.transfer(ALICE, 40, ALICE, BOB, "invoice 17")

        event = ledger.audit.get_events_by_type(AuditEventType.TOKENS_TRANSFERRED)[0]
        assert event.caller == ALICE
        assert event.metadata == {"amount": 40, "sender": ALICE, "recipient": BOB, "memo": "invoice 17"}

    def test_mint_event_references_record(self, ledger):
        ledger.mint(DEPLOYER, 100, ALICE, "")
        events = ledger.audit.get_events_for_entity("mint_record", "1")
        assert len(events) == 1
        assert events[0].metadata["recipient"] == ALICE

    def test_rejections_are_not_audited(self, ledger):
        ledger.burn(ALICE, 10)
        ledger.pause(ALICE)
        ledger.mint(ALICE, 1, BOB, "")
        assert ledger.audit.count_events() == 1

    def test_audit_can_be_disabled(self, clock):
        storage = InMemoryStorage()
        config = LedgerConfig(_env_file=None, enable_audit_logging=False)
        ledger = TokenLedger(config=config, storage=storage, clock=clock)
        ledger.mint(DEPLOYER, 100, ALICE, "")

        assert ledger.audit is None
        assert storage.count("audit_events") == 0
