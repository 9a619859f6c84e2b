import pytest

import branches
import members


@pytest.mark.parametrize("raw, expected", [
    ("1", "01"),
    (1, "01"),
    ("1.0", "01"),
    (" 07 ", "07"),
    ("12", "12"),
    ("bt", "BT"),
    ("", ""),
    (None, ""),
    (float("nan"), ""),
])
def test_normalize_code(raw, expected):
    assert branches.normalize_code(raw) == expected


def test_upsert_new_branch_gets_generated_id(seeded):
    ok, _, bid = branches.upsert_branch({"code": "3", "name": "Bogor Timur", "subBranches": [
        {"name": "Baranangsiang"}, {"name": "Tajur"},
    ]})

    assert ok
    assert bid.startswith("br-")
    stored = branches.get_branch(bid)
    assert stored["code"] == "03"
    sub_ids = [sb["id"] for sb in stored["subBranches"]]
    assert len(set(sub_ids)) == 2
    assert all(s.startswith("sb-") for s in sub_ids)


def test_upsert_existing_branch_replaces_in_place(seeded):
    ok, _, bid = branches.upsert_branch({"id": "br-002", "code": "02", "name": "Bogor Tengah",
                                         "leader": "Baru", "subBranches": []})
    assert ok and bid == "br-002"
    listing = branches.list_branches()
    assert [b["id"] for b in listing] == ["br-001", "br-002"]
    assert listing[1]["leader"] == "Baru"
    assert listing[1]["subBranches"] == []


def test_upsert_requires_name(seeded):
    ok, msg, bid = branches.upsert_branch({"code": "09", "name": " "})
    assert not ok and bid is None


def test_duplicate_sub_branch_ids_are_reassigned():
    out = branches._normalize_branch({"name": "X", "subBranches": [{"id": "a", "name": "1"}, {"id": "a", "name": "2"}]})
    ids = [sb["id"] for sb in out["subBranches"]]
    assert ids[0] == "a"
    assert ids[1] != "a"


def test_delete_branch_does_not_touch_members(seeded):
    before = members.list_members()

    ok, _ = branches.delete_branch("br-001")

    assert ok
    assert branches.get_branch("br-001") is None
    assert members.list_members() == before
    assert branches.delete_branch("br-001")[0] is False


def test_sub_branch_lifecycle(seeded):
    ok, _, sid = branches.add_sub_branch("br-002", {"code": "3", "name": "Paledang", "latitude": "-6.6"})
    assert ok
    sub = next(sb for sb in branches.get_branch("br-002")["subBranches"] if sb["id"] == sid)
    assert sub["code"] == "03"
    assert sub["latitude"] == -6.6

    ok, _ = branches.update_sub_branch("br-002", {"id": sid, "leader": "Rina"})
    assert ok
    sub = next(sb for sb in branches.get_branch("br-002")["subBranches"] if sb["id"] == sid)
    assert sub["leader"] == "Rina" and sub["name"] == "Paledang"

    ok, _ = branches.delete_sub_branch("br-002", sid)
    assert ok
    assert sid not in [sb["id"] for sb in branches.get_branch("br-002")["subBranches"]]

    assert branches.delete_sub_branch("br-002", sid)[0] is False
    assert branches.add_sub_branch("br-999", {"name": "X"})[0] is False


def test_merge_branches_is_idempotent(seeded):
    incoming = [
        {"code": "01", "name": "Bogor Barat", "subBranches": [
            {"code": "01", "name": "Bubulak", "latitude": -6.56, "longitude": 106.75},
            {"code": "04", "name": "Sindang Barang"},
        ]},
        {"code": "05", "name": "Bogor Selatan", "subBranches": []},
    ]

    once, stats1 = branches.merge_branches(branches.list_branches(), incoming)
    twice, stats2 = branches.merge_branches(once, incoming)

    assert once == twice
    assert stats1["new_branch"] == 1 and stats1["new_sub"] == 1 and stats1["update_sub"] == 1
    assert stats2["new_branch"] == 0 and stats2["new_sub"] == 0 and stats2["update_sub"] == 0
    barat = branches.find_branch_by_code("01", once)
    assert barat["id"] == "br-001"
    assert [sb["name"] for sb in barat["subBranches"]] == ["Bubulak", "Cifor", "Semplak", "Sindang Barang"]
    assert barat["subBranches"][0]["id"] == "sb-001"


def test_merge_matches_by_name_without_code(seeded):
    merged, stats = branches.merge_branches(branches.list_branches(), [{"name": "bogor tengah", "leader": "Joko"}])
    assert stats["update_branch"] == 1
    assert len(merged) == 2
    assert branches.get_branch("br-002", merged)["leader"] == "Joko"


def test_mappable_sub_branches():
    directory = [{
        "id": "br-1", "name": "Bogor Barat", "subBranches": [
            {"id": "s1", "name": "Bubulak", "latitude": -6.56, "longitude": 106.75},
            {"id": "s2", "name": "Cifor", "latitude": -6.55},
            {"id": "s3", "name": "Semplak"},
        ],
    }]
    people = [
        {"id": "a", "branch": "Bogor Barat", "subBranch": "Bubulak"},
        {"id": "b", "branch": "Bogor Barat", "subBranch": "Bubulak"},
        {"id": "c", "branch": "Bogor Tengah", "subBranch": "Bubulak"},
    ]

    points = branches.mappable_sub_branches(directory, people)

    assert [p["id"] for p in points] == ["s1"]
    assert points[0]["branchName"] == "Bogor Barat"
    assert points[0]["memberCount"] == 2


def test_code_miss_falls_back_to_name(seeded):
    branches.save_branches([{"id": "br-009", "code": "", "name": "Bogor Utara", "subBranches": []}])

    merged, stats = branches.merge_branches(branches.list_branches(), [
        {"code": "05", "name": "Bogor Utara", "subBranches": []},
    ])

    assert [(b["id"], b["code"], b["name"]) for b in merged] == [("br-009", "05", "Bogor Utara")]
    assert stats["new_branch"] == 0


def test_name_match_with_another_code_is_not_merged(seeded):
    merged, stats = branches.merge_branches(branches.list_branches(), [
        {"code": "07", "name": "Bogor Barat", "subBranches": []},
    ])
    assert stats["new_branch"] == 1
    assert branches.find_branch_by_code("01", merged)["code"] == "01"

    before = branches.list_branches()
    ok, msg, _ = branches.bulk_merge_branches([{"code": "07", "name": "Bogor Barat", "subBranches": []}])
    assert not ok and "sudah ada" in msg
    assert branches.list_branches() == before


def test_upsert_rejects_duplicate_names(seeded):
    ok, msg, bid = branches.upsert_branch({"code": "09", "name": "bogor barat", "subBranches": []})
    assert not ok and bid is None
    assert "sudah ada" in msg

    ok, _, sid = branches.add_sub_branch("br-001", {"name": "Cifor"})
    assert not ok and sid is None
    assert len(branches.get_branch("br-001")["subBranches"]) == 3


def test_update_sub_branch_rename_reaches_members(seeded):
    ok, _ = branches.update_sub_branch("br-001", {"id": "sb-002", "name": "Cifor Raya"})

    assert ok
    assert members.get_member("2")["subBranch"] == "Cifor Raya"
    assert branches.update_sub_branch("br-001", {"id": "sb-002", "name": " "})[0] is False
