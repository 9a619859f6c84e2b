import pandas as pd
import pytest

import branches
import members
import smart_import


def _csv_bytes(text):
    return text.encode("utf-8-sig")


def test_read_csv_keeps_codes_and_long_ids_as_text():
    raw = _csv_bytes("NIA,Nama,Kode Cabang\n3201010101010001,Andi,01\n,Budi,2\n")

    df = smart_import.read_upload_file(raw, "anggota.csv")

    assert df.loc[0, "NIA"] == "3201010101010001"
    assert df.loc[0, "Kode Cabang"] == "01"
    assert df.loc[1, "NIA"] == ""


def test_read_excel_round_trip():
    df = pd.DataFrame({"NIA": ["0012"], "Nama": ["Andi"]})
    back = smart_import.read_upload_file(smart_import.to_excel_bytes(df), "anggota.xlsx")
    assert back.loc[0, "NIA"] == "0012"


def test_unreadable_upload_raises_format_error():
    with pytest.raises(smart_import.ImportFormatError):
        smart_import.read_upload_file(b"\x00\x01 definitely not a workbook", "data.xlsx")


def test_missing_required_column_raises_format_error(seeded):
    df = pd.DataFrame({"Email": ["a@b.c"]})
    with pytest.raises(smart_import.ImportFormatError):
        smart_import.analyze_member_rows(df)
    with pytest.raises(smart_import.ImportFormatError):
        smart_import.group_branch_rows(df)


def test_normalize_headers_synonyms():
    mapping = smart_import.normalize_headers(
        ["No. Anggota", "Nama Lengkap", "Jenis Kelamin", "Kode Cabang", "Cabang"], smart_import.MEMBER_SYNONYMS)
    assert mapping["No. Anggota"] == "id"
    assert mapping["Nama Lengkap"] == "name"
    assert mapping["Jenis Kelamin"] == "gender"
    assert mapping["Cabang"] == "branch"
    assert "Kode Cabang" not in mapping


def _member_sheet(rows):
    return pd.DataFrame(rows, columns=smart_import.MEMBER_COLUMNS).fillna("")


def test_member_import_twice_is_idempotent(seeded):
    first = _member_sheet([
        ["NIA-2024-0501", "Andi", "andi", "", "Pelatih", "Hijau", "Bogor Barat", "Cifor", "", "", "Laki-laki"],
        ["NIA-2024-0502", "Bunga", "bunga", "", "Anggota", "Kuning", "Bogor Tengah", "Sempur", "", "", "Perempuan"],
    ])
    second = _member_sheet([
        ["NIA-2024-0501", "Andi Pratama", "andi", "", "Pelatih", "Biru", "Bogor Barat", "Cifor", "", "", "Laki-laki"],
        ["NIA-2024-0502", "Bunga", "bunga", "", "Anggota", "Kuning", "Bogor Tengah", "Sempur", "", "", "Perempuan"],
    ])

    stats1 = smart_import.import_members(first)
    stats2 = smart_import.import_members(second)

    assert (stats1["new"], stats1["update"]) == (2, 0)
    assert (stats2["new"], stats2["update"]) == (0, 2)
    ids = [m["id"] for m in members.list_members()]
    assert ids.count("NIA-2024-0501") == 1
    assert ids.count("NIA-2024-0502") == 1
    andi = members.get_member("NIA-2024-0501")
    assert andi["name"] == "Andi Pratama"
    assert (andi["beltLevel"], andi["predicate"]) == ("Biru", "Wira Utama")


def test_member_import_defaults(seeded):
    df = _member_sheet([
        ["", "Citra", "citra", "", "", "Kuning", "", "", "", "", "perempuan"],
        ["", "Dodi", "dodi", "", "", "Sabuk Aneh", "", "", "", "pengurus", ""],
        ["NIA-2024-0600", "", "", "", "", "", "", "", "", "", ""],
    ])

    analysis = smart_import.analyze_member_rows(df)
    assert analysis["summary"] == {"total": 3, "new": 2, "fail": 1}

    stats = smart_import.apply_member_import(analysis["rows"])
    assert (stats["new"], stats["fail"]) == (2, 1)

    citra = next(m for m in members.list_members() if m["name"] == "Citra")
    dodi = next(m for m in members.list_members() if m["name"] == "Dodi")
    assert citra["id"].startswith("NIA-") and dodi["id"].startswith("NIA-")
    assert citra["id"] != dodi["id"]
    assert citra["gender"] == "Laki-laki"
    assert citra["role"] == "ANGGOTA"
    assert citra["predicate"] == "Wira Putra"
    assert dodi["role"] == "PENGURUS"
    assert dodi["predicate"] == "Baru"
    assert members.get_member("NIA-2024-0600") is None


def test_duplicate_nia_in_one_sheet_last_row_wins(seeded):
    df = _member_sheet([
        ["NIA-2024-0700", "Eka", "", "", "", "", "", "", "", "", ""],
        ["NIA-2024-0700", "Eka Putri", "", "", "", "", "", "", "", "", "Perempuan"],
    ])

    analysis = smart_import.analyze_member_rows(df)
    assert [r["status"] for r in analysis["rows"]] == ["new", "update"]

    smart_import.apply_member_import(analysis["rows"])
    eka = members.get_member("NIA-2024-0700")
    assert (eka["name"], eka["gender"]) == ("Eka Putri", "Perempuan")
    assert [m["id"] for m in members.list_members()].count("NIA-2024-0700") == 1


def test_progress_callback_reaches_total(seeded):
    df = _member_sheet([["NIA-2024-0800", "Fani", "", "", "", "", "", "", "", "", ""]])
    seen = []
    smart_import.import_members(df, progress_cb=lambda done, total, msg: seen.append((done, total)))
    assert seen[0] == (0, 1)
    assert seen[-1] == (1, 1)


def _branch_sheet(rows):
    return pd.DataFrame(rows, columns=smart_import.BRANCH_COLUMNS).fillna("")


def test_rows_sharing_a_branch_code_form_one_branch(seeded):
    df = _branch_sheet([
        ["01", "Bogor Utara", "Hadi", "01", "Bantarjati", "Iwan", "-6.57", "106.81"],
        ["1", "Bogor Utara", "", "02", "Tegal Gundil", "Joni", "", ""],
    ])

    grouped = smart_import.group_branch_rows(df)
    assert len(grouped) == 1
    assert grouped[0]["code"] == "01"
    assert [sb["name"] for sb in grouped[0]["subBranches"]] == ["Bantarjati", "Tegal Gundil"]
    assert grouped[0]["subBranches"][0]["latitude"] == -6.57
    assert "latitude" not in grouped[0]["subBranches"][1]

    branches.save_branches([])
    stats = smart_import.import_branches(df)
    assert stats["ok"]
    stored = branches.list_branches()
    assert len(stored) == 1
    assert len(stored[0]["subBranches"]) == 2


def test_branch_import_is_idempotent(seeded):
    df = _branch_sheet([
        ["03", "Bogor Timur", "Kiki", "01", "Baranangsiang", "", "", ""],
        ["03", "Bogor Timur", "Kiki", "02", "Tajur", "", "", ""],
        ["01", "Bogor Barat", "", "04", "Sindang Barang", "", "", ""],
    ])

    smart_import.import_branches(df)
    once = branches.list_branches()
    stats = smart_import.import_branches(df)

    assert branches.list_branches() == once
    assert stats["new_branch"] == 0 and stats["new_sub"] == 0
    assert len(once) == 3
    assert len(branches.find_branch_by_code("01", once)["subBranches"]) == 4


def test_branch_import_rename_by_code_cascades(seeded):
    df = _branch_sheet([["01", "Bogor Barat Baru", "", "", "", "", "", ""]])

    stats = smart_import.import_branches(df)

    assert stats["members_updated"] == 3
    assert members.get_member("2")["branch"] == "Bogor Barat Baru"


def test_zero_sub_branch_export_round_trip(seeded):
    branches.upsert_branch({"code": "07", "name": "Bogor Timur", "leader": "Lina", "subBranches": []})
    exported = smart_import.export_branches_df(branches.list_branches())
    row = exported[exported["Kode Cabang"] == "07"].iloc[0]
    assert row["Nama Ranting"] == ""

    bid = branches.find_branch_by_code("07")["id"]
    branches.delete_branch(bid)
    df = smart_import.read_upload_file(smart_import.to_excel_bytes(exported), "cabang.xlsx")
    smart_import.import_branches(df)

    restored = branches.find_branch_by_code("07")
    assert restored["name"] == "Bogor Timur"
    assert restored["subBranches"] == []


def test_export_members_columns(seeded):
    df = smart_import.export_members_df(members.list_members())
    assert list(df.columns) == smart_import.MEMBER_EXPORT_COLUMNS
    assert df.loc[df["NIA"] == "1", "Pelatih"].iloc[0] == "Ya"


def test_exported_members_reimport_unchanged(seeded):
    before = members.list_members()
    df = smart_import.read_upload_file(
        smart_import.to_excel_bytes(smart_import.export_members_df(before)), "anggota.xlsx")

    stats = smart_import.import_members(df)

    assert stats["update"] == 3
    assert members.list_members() == before


def test_imported_rows_without_username_get_distinct_logins(seeded):
    df = _member_sheet([
        ["NIA-2024-0901", "Gita", "", "", "", "", "", "", "", "", ""],
        ["NIA-2024-0902", "Hana", "", "", "", "", "", "", "", "", ""],
    ])

    smart_import.import_members(df)

    assert members.get_member("NIA-2024-0901")["username"] == "nia-2024-0901"
    assert members.get_member("NIA-2024-0902")["username"] == "nia-2024-0902"
    ok, _, user = members.authenticate("nia-2024-0902", "password")
    assert ok and user["name"] == "Hana"


def test_branch_import_swapping_names_by_code(seeded):
    members.upsert_member(members.build_member({"id": "NIA-X-1", "name": "Tengah", "branch": "Bogor Tengah"}))
    df = _branch_sheet([
        ["01", "Bogor Tengah", "", "", "", "", "", ""],
        ["02", "Bogor Barat", "", "", "", "", "", ""],
    ])

    stats = smart_import.import_branches(df)

    assert stats["ok"] and stats["members_updated"] == 4
    assert members.get_member("2")["branch"] == "Bogor Tengah"
    assert members.get_member("NIA-X-1")["branch"] == "Bogor Barat"
    assert [b["name"] for b in branches.list_branches()] == ["Bogor Tengah", "Bogor Barat"]


def test_branch_import_rejects_rename_onto_taken_name(seeded):
    before_branches = branches.list_branches()
    before_members = members.list_members()
    df = _branch_sheet([["01", "Bogor Tengah", "", "", "", "", "", ""]])

    stats = smart_import.import_branches(df)

    assert not stats["ok"]
    assert "sudah ada" in stats["message"]
    assert branches.list_branches() == before_branches
    assert members.list_members() == before_members
