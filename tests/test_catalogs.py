import catalogs
import database
import members


def test_add_position_rejects_blank_and_duplicate(seeded):
    assert catalogs.add_position("  ")[0] is False
    assert catalogs.add_position("Pelatih")[0] is False

    ok, _ = catalogs.add_position("Humas")
    assert ok
    assert catalogs.list_positions()[-1] == "Humas"


def test_delete_position_orphans_members(seeded):
    before = members.list_members()

    ok, _ = catalogs.delete_position("Sekretaris")

    assert ok
    assert "Sekretaris" not in catalogs.list_positions()
    assert members.list_members() == before
    assert members.get_member("2")["position"] == "Sekretaris"


def test_delete_unknown_position():
    ok, msg = catalogs.delete_position("Tidak Ada")
    assert not ok
    assert "tidak ditemukan" in msg


def test_make_belt_level_defaults():
    assert catalogs.make_belt_level(" Putih ") == {"name": "Putih", "color": "#cbd5e1", "predicate": "-"}


def test_add_and_delete_belt_level(seeded):
    ok, _ = catalogs.add_belt_level("Putih", "#ffffff", "Pemula")
    assert ok
    assert catalogs.find_belt_level("Putih") == {"name": "Putih", "color": "#ffffff", "predicate": "Pemula"}
    assert catalogs.add_belt_level("Putih")[0] is False

    before = members.list_members()
    ok, _ = catalogs.delete_belt_level("Hitam")
    assert ok
    assert catalogs.find_belt_level("Hitam") is None
    assert members.list_members() == before


def test_catalog_write_failure_reports_message(seeded, monkeypatch):
    monkeypatch.setattr(database, "MAX_VALUE_BYTES", 10)
    ok, msg = catalogs.add_position("Humas")
    assert not ok
    assert "Penyimpanan gagal" in msg
    assert "Humas" not in catalogs.list_positions()
