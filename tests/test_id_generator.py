import re

import database
import id_generator

KEYS = database.KEYS


def test_format_and_sequence():
    first = id_generator.next_member_id([], year=2025, prefix="NIA")
    second = id_generator.next_member_id([], year=2025, prefix="NIA")

    assert first == "NIA-2025-0001"
    assert second == "NIA-2025-0002"
    assert database.get(KEYS["NIA_SEQ"]) == {"last": 2}


def test_n_calls_without_commit_are_distinct():
    ids = [id_generator.next_member_id([]) for _ in range(50)]
    assert len(set(ids)) == 50
    assert all(re.fullmatch(r"NIA-\d{4}-\d{4}", i) for i in ids)


def test_distinct_even_when_counter_cannot_be_persisted(monkeypatch):
    monkeypatch.setattr(database, "MAX_VALUE_BYTES", 5)
    ids = [id_generator.next_member_id([]) for _ in range(10)]
    assert len(set(ids)) == 10
    assert not database.has(KEYS["NIA_SEQ"])


def test_starts_above_existing_suffixes():
    nid = id_generator.next_member_id(["NIA-2024-0041", "legacy-7", "admin"], year=2025)
    assert nid == "NIA-2025-0042"


def test_counter_continues_from_store():
    database.set(KEYS["NIA_SEQ"], {"last": 4})
    assert id_generator.next_member_id([], year=2025, prefix="X") == "X-2025-0005"
    assert id_generator.next_member_id(["X-2025-0009"], year=2025, prefix="X") == "X-2025-0010"


def test_prefix_from_config(set_config):
    set_config(nia_prefix="KBPC")
    assert id_generator.next_member_id([], year=2030).startswith("KBPC-2030-")


def test_short_id_unique_against_taken(monkeypatch):
    values = iter(["aaaaaaaaa000", "aaaaaaaaa000", "bbbbbbbbb000"])

    class _U:
        def __init__(self, h):
            self.hex = h

    monkeypatch.setattr(id_generator.uuid, "uuid4", lambda: _U(next(values)))

    assert id_generator.short_id("br", ["br-aaaaaaaaa"]) == "br-bbbbbbbbb"
