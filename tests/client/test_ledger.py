# tests/client/test_ledger.py
"""Tests for the interest ledgers."""

import json

from openmkt_relay.client.ledger import JsonFileInterestLedger, MemoryInterestLedger, ledger_key

URI = "at://did:plc:seller/app.openmkt.listing/1"


def test_ledger_key_format() -> None:
    assert ledger_key(URI) == f"interest-sent-{URI}"


def test_memory_ledger() -> None:
    ledger = MemoryInterestLedger()

    assert not ledger.was_sent(URI)
    ledger.mark_sent(URI)
    assert ledger.was_sent(URI)


def test_json_ledger_persists_across_instances(tmp_path) -> None:
    path = tmp_path / "nested" / "interest.json"

    JsonFileInterestLedger(path).mark_sent(URI)

    assert JsonFileInterestLedger(path).was_sent(URI)
    assert json.loads(path.read_text()) == {f"interest-sent-{URI}": True}


def test_json_ledger_tolerates_missing_or_corrupt_file(tmp_path) -> None:
    path = tmp_path / "interest.json"
    ledger = JsonFileInterestLedger(path)
    assert not ledger.was_sent(URI)

    path.write_text("{not json")
    assert not ledger.was_sent(URI)
    ledger.mark_sent(URI)
    assert ledger.was_sent(URI)
