# smart_import.py
# Spreadsheet reconciliation engine (analyze -> preview -> apply)
# - Streamlit UI lives in main.py (import / export pages)
# - this module only reads, normalizes, previews and applies

from __future__ import annotations

import io
import logging
import math
import re
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

import branches as branch_dir
import catalogs
import id_generator
import members as member_repo

logger = logging.getLogger(__name__)


class ImportFormatError(Exception):
    """Upload cannot be read or lacks a required column."""


# ---------------------------------------------------------
# Sheet layouts
# ---------------------------------------------------------
MEMBER_COLUMNS = [
    "NIA", "Nama", "Username", "Email", "Jabatan", "Tingkat Sabuk",
    "Cabang", "Ranting", "Kecamatan", "Role", "Gender",
]
# export carries a few extra columns the importer also understands
MEMBER_EXPORT_COLUMNS = MEMBER_COLUMNS + ["Status", "Tanggal Bergabung", "Pelatih"]

BRANCH_COLUMNS = [
    "Kode Cabang", "Nama Cabang", "Pimpinan Cabang",
    "Kode Ranting", "Nama Ranting", "PIC Ranting", "Lat Ranting", "Long Ranting",
]

MEMBER_SYNONYMS = {
    "id": ["NIA", "No Anggota", "Nomor Anggota", "No Induk", "ID"],
    "name": ["Nama", "Nama Lengkap", "Name"],
    "username": ["Username", "User Name"],
    "email": ["Email", "E-mail", "Surel"],
    "position": ["Jabatan", "Position"],
    "beltLevel": ["Tingkat Sabuk", "Sabuk", "Belt", "Belt Level"],
    "branch": ["Cabang", "Branch"],
    "subBranch": ["Ranting", "Sub Branch"],
    "kecamatan": ["Kecamatan", "District"],
    "role": ["Role", "Hak Akses", "Peran"],
    "gender": ["Gender", "Jenis Kelamin", "JK"],
    "status": ["Status"],
    "joinDate": ["Tanggal Bergabung", "Tgl Bergabung", "Join Date"],
    "isCoach": ["Pelatih", "Coach", "isCoach"],
}

BRANCH_SYNONYMS = {
    "branch_code": ["Kode Cabang", "Kode"],
    "branch_name": ["Nama Cabang", "Cabang"],
    "branch_leader": ["Pimpinan Cabang", "Ketua Cabang", "Pimpinan"],
    "sub_code": ["Kode Ranting"],
    "sub_name": ["Nama Ranting", "Ranting"],
    "sub_leader": ["PIC Ranting", "Pimpinan Ranting", "Ketua Ranting"],
    "latitude": ["Lat Ranting", "Latitude", "Lat"],
    "longitude": ["Long Ranting", "Longitude", "Long", "Lng"],
}

_TRUE_WORDS = {"ya", "y", "yes", "true", "1"}


# ---------------------------------------------------------
# [Helper] reading / cleaning
# ---------------------------------------------------------
def read_upload_file(file_bytes: bytes, filename: str) -> pd.DataFrame:
    """Load an upload (csv/xlsx) with every cell as text so codes like '01' survive."""
    bio = io.BytesIO(file_bytes)
    lower = (filename or "").lower()
    try:
        if lower.endswith(".csv"):
            # utf-8-sig first, then the default codec
            try:
                return pd.read_csv(bio, encoding="utf-8-sig", dtype=str, keep_default_na=False)
            except UnicodeDecodeError:
                bio.seek(0)
                return pd.read_csv(bio, encoding="latin-1", dtype=str, keep_default_na=False)
        return pd.read_excel(bio, dtype=str, keep_default_na=False)
    except Exception as e:
        logger.warning("upload unreadable (%s): %s", filename, e)
        raise ImportFormatError(f"File '{filename}' tidak dapat dibaca.") from e


def _as_str(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, float) and math.isnan(x):
        return ""
    s = str(x).strip()
    return "" if s.lower() == "nan" else s


def _clean_text(text: Any) -> str:
    """[Preprocess] drop punctuation / spaces and lowercase for header matching."""
    return re.sub(r"[^a-zA-Z0-9]", "", str(text)).lower()


def normalize_headers(columns: List[Any], synonyms: Dict[str, List[str]]) -> Dict[Any, str]:
    """
    Map sheet headers to field keys.
    Pass 1: exact cleaned match. Pass 2: header containing a synonym (longest synonym wins),
    only for headers and keys still unmapped. A key is mapped at most once.
    """
    mapping: Dict[Any, str] = {}
    cleaned = {c: _clean_text(c) for c in columns}

    for col in columns:
        for key, words in synonyms.items():
            if key in mapping.values():
                continue
            if any(_clean_text(w) == cleaned[col] for w in words):
                mapping[col] = key
                break

    for col in columns:
        if col in mapping:
            continue
        best, best_len = None, 0
        for key, words in synonyms.items():
            if key in mapping.values():
                continue
            for w in words:
                cw = _clean_text(w)
                if len(cw) >= 4 and cw in cleaned[col] and len(cw) > best_len:
                    best, best_len = key, len(cw)
        if best:
            mapping[col] = best
    return mapping


def _records(df: pd.DataFrame, synonyms: Dict[str, List[str]], required: List[str]) -> List[Dict[str, str]]:
    mapping = normalize_headers(list(df.columns), synonyms)
    missing = [k for k in required if k not in mapping.values()]
    if missing:
        raise ImportFormatError("Kolom wajib tidak ditemukan: " + ", ".join(missing))
    out = []
    for _, row in df.iterrows():
        out.append({key: _as_str(row[col]) for col, key in mapping.items()})
    return out


# ---------------------------------------------------------
# Members
# ---------------------------------------------------------
def _member_fields(rec: Dict[str, str], belts: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Sheet record -> member fields. Blank cells are left out so updates keep stored values."""
    out: Dict[str, Any] = {k: v for k, v in rec.items() if v and k not in ("gender", "role", "isCoach", "status")}
    if "gender" in rec:
        out["gender"] = "Perempuan" if rec["gender"] == "Perempuan" else "Laki-laki"
    if rec.get("role"):
        role = rec["role"].upper()
        out["role"] = role if role in member_repo.ROLES else "ANGGOTA"
    if rec.get("status") in member_repo.STATUSES:
        out["status"] = rec["status"]
    if rec.get("isCoach"):
        out["isCoach"] = rec["isCoach"].strip().lower() in _TRUE_WORDS
    if out.get("beltLevel"):
        belt = catalogs.find_belt_level(out["beltLevel"], belts)
        out["predicate"] = belt["predicate"] if belt else "Baru"
    return out


def analyze_member_rows(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Preview without writing.
    - NIA known (store or earlier row of the same sheet) -> 'update'
    - NIA blank or unknown -> 'new' (blank NIA is generated on apply)
    - Nama blank on a new row -> 'fail'
    """
    records = _records(df, MEMBER_SYNONYMS, required=["name"])
    belts = catalogs.list_belt_levels()
    known = {m.get("id") for m in member_repo.list_members()}

    rows_out: List[Dict[str, Any]] = []
    for seq, rec in enumerate(records, start=1):
        mid = rec.get("id", "")
        fields = _member_fields(rec, belts)
        if mid and mid in known:
            status, reason = "update", "NIA sudah terdaftar"
        elif not rec.get("name"):
            status, reason = "fail", "Nama kosong"
        else:
            status, reason = "new", "" if mid else "NIA dibuat otomatis"
        if mid and status != "fail":
            known.add(mid)
        rows_out.append({"seq": seq, "id": mid, "name": rec.get("name", ""), "fields": fields,
                         "status": status, "reason": reason})

    summary = {"total": len(rows_out)}
    for r in rows_out:
        summary[r["status"]] = summary.get(r["status"], 0) + 1
    return {"summary": summary, "rows": rows_out}


def build_display_df(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    """Flattened preview table for the UI"""
    return pd.DataFrame([
        {
            "No": r.get("seq"),
            "NIA": r.get("id") or "(otomatis)",
            "Nama": r.get("name"),
            "Cabang": r["fields"].get("branch", ""),
            "Ranting": r["fields"].get("subBranch", ""),
            "Status": r.get("status"),
            "Keterangan": r.get("reason"),
        }
        for r in rows
    ])


def apply_member_import(rows: List[Dict[str, Any]],
                        progress_cb: Optional[Callable[[int, int, str], None]] = None) -> Dict[str, Any]:
    """
    Upsert analyzed rows one by one in sheet order (no batch transaction).
    A later row with the same NIA overwrites the earlier one.
    progress_cb: (done:int, total:int, message:str)
    """
    stats: Dict[str, Any] = {"new": 0, "update": 0, "fail": 0, "errors": []}
    total = len(rows)

    def _cb(done: int, msg: str = ""):
        if progress_cb:
            progress_cb(done, total, msg)

    _cb(0, "mulai")
    for idx, r in enumerate(rows, start=1):
        if r.get("status") == "fail":
            stats["fail"] += 1
            stats["errors"].append((r.get("seq"), r.get("reason")))
            _cb(idx)
            continue

        fields = dict(r.get("fields") or {})
        existing = member_repo.get_member(fields["id"]) if fields.get("id") else None
        if existing is not None:
            ok, msg = member_repo.upsert_member(fields)
            key = "update"
        else:
            ok, msg = member_repo.upsert_member(member_repo.build_member(fields))
            key = "new"

        if ok:
            stats[key] += 1
        else:
            stats["fail"] += 1
            stats["errors"].append((r.get("seq"), msg))
            logger.warning("member import row %s failed: %s", r.get("seq"), msg)
        _cb(idx, r.get("name") or "")

    _cb(total, "selesai")
    return stats


def import_members(df: pd.DataFrame, progress_cb: Optional[Callable[[int, int, str], None]] = None) -> Dict[str, Any]:
    return apply_member_import(analyze_member_rows(df)["rows"], progress_cb=progress_cb)


# ---------------------------------------------------------
# Branches
# ---------------------------------------------------------
def group_branch_rows(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """
    One row per (branch, sub-branch) -> hierarchical branch list.
    Rows group by branch code (by name when the code is blank); the first row of a group
    creates the branch, every row with a Nama Ranting adds one sub-branch.
    """
    records = _records(df, BRANCH_SYNONYMS, required=["branch_name"])
    groups: Dict[str, Dict[str, Any]] = {}

    for rec in records:
        code = branch_dir.normalize_code(rec.get("branch_code"))
        name = rec.get("branch_name", "")
        if not code and not name:
            continue
        gkey = f"code:{code}" if code else f"name:{name.casefold()}"
        branch = groups.get(gkey)
        if branch is None:
            branch = {"code": code, "name": name, "leader": rec.get("branch_leader", ""), "subBranches": []}
            groups[gkey] = branch

        sub_name = rec.get("sub_name", "")
        if not sub_name:
            continue
        sub = {
            "id": id_generator.short_id("sb", (sb["id"] for sb in branch["subBranches"])),
            "code": branch_dir.normalize_code(rec.get("sub_code")),
            "name": sub_name,
            "leader": rec.get("sub_leader", ""),
        }
        for coord in ("latitude", "longitude"):
            value = branch_dir.to_coordinate(rec.get(coord))
            if value is not None:
                sub[coord] = value
        branch["subBranches"].append(sub)

    return list(groups.values())


def import_branches(df: pd.DataFrame) -> Dict[str, Any]:
    """Group, merge into the stored directory, persist (renames cascade to members)."""
    ok, msg, stats = branch_dir.bulk_merge_branches(group_branch_rows(df))
    stats.update({"ok": ok, "message": msg})
    if not ok:
        logger.warning("branch import not saved: %s", msg)
    return stats


# ---------------------------------------------------------
# Export
# ---------------------------------------------------------
def _fmt_coord(value: Any) -> str:
    c = branch_dir.to_coordinate(value)
    return "" if c is None else repr(c)


def export_branches_df(branches: List[Dict[str, Any]]) -> pd.DataFrame:
    rows = []
    for b in branches:
        head = {
            "Kode Cabang": b.get("code", ""),
            "Nama Cabang": b.get("name", ""),
            "Pimpinan Cabang": b.get("leader", ""),
        }
        subs = b.get("subBranches") or []
        if not subs:
            rows.append({**head, "Kode Ranting": "", "Nama Ranting": "", "PIC Ranting": "",
                         "Lat Ranting": "", "Long Ranting": ""})
        for sb in subs:
            rows.append({
                **head,
                "Kode Ranting": sb.get("code", ""),
                "Nama Ranting": sb.get("name", ""),
                "PIC Ranting": sb.get("leader", ""),
                "Lat Ranting": _fmt_coord(sb.get("latitude")),
                "Long Ranting": _fmt_coord(sb.get("longitude")),
            })
    return pd.DataFrame(rows, columns=BRANCH_COLUMNS)


def export_members_df(members: List[Dict[str, Any]]) -> pd.DataFrame:
    rows = [
        {
            "NIA": m.get("id", ""),
            "Nama": m.get("name", ""),
            "Username": m.get("username", ""),
            "Email": m.get("email", ""),
            "Jabatan": m.get("position", ""),
            "Tingkat Sabuk": m.get("beltLevel", ""),
            "Cabang": m.get("branch", ""),
            "Ranting": m.get("subBranch", ""),
            "Kecamatan": m.get("kecamatan", ""),
            "Role": m.get("role", ""),
            "Gender": m.get("gender", ""),
            "Status": m.get("status", ""),
            "Tanggal Bergabung": m.get("joinDate", ""),
            "Pelatih": "Ya" if m.get("isCoach") else "Tidak",
        }
        for m in members
    ]
    return pd.DataFrame(rows, columns=MEMBER_EXPORT_COLUMNS)


def to_excel_bytes(df: pd.DataFrame, sheet_name: str = "Data") -> bytes:
    bio = io.BytesIO()
    with pd.ExcelWriter(bio, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
    return bio.getvalue()
