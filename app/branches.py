"""
KBPC Branch Directory (Cabang -> Ranting)
Two-level hierarchy persisted as one list; a branch exclusively owns its sub-branch list.

[Rules]
1. Branch ids are generator-assigned, globally unique and never reused.
2. Sub-branch ids are unique within their owning branch.
3. Numeric codes are zero-padded to two digits ("1" -> "01").
4. Sub-branch mutations are read-modify-upsert of the owning branch, saved through cascade.save_branch.
5. Branch names are unique; sub-branch names are unique within their branch (case-insensitive).
"""

from __future__ import annotations

import copy
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

import database
import id_generator
import seeds

KEYS = database.KEYS

STORE_FAIL_MSG = "Penyimpanan gagal! Memori penyimpanan penuh."


# ---------------------------------------------------------
# [Helper] normalization
# ---------------------------------------------------------
def _clean(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, float) and math.isnan(x):
        return ""
    s = str(x).strip()
    return "" if s.lower() in ("nan", "none") else s


def normalize_code(value: Any) -> str:
    """2-digit display code. '1', '1.0', 1 -> '01'; non-numeric codes are kept (trimmed, upper)."""
    s = _clean(value)
    if not s:
        return ""
    if re.fullmatch(r"\d+(\.0+)?", s):
        return s.split(".")[0].zfill(2)
    return s.upper()


def to_coordinate(value: Any) -> Optional[float]:
    s = _clean(value).replace(",", ".")
    if not s:
        return None
    try:
        f = float(s)
    except ValueError:
        return None
    return None if math.isnan(f) else f


def _name_key(name: Any) -> str:
    return re.sub(r"\s+", " ", _clean(name)).casefold()


def _normalize_sub_branch(sub: Dict[str, Any], taken_ids: set) -> Dict[str, Any]:
    out = dict(sub)
    sid = _clean(out.get("id"))
    if not sid or sid in taken_ids:
        sid = id_generator.short_id("sb", taken_ids)
    taken_ids.add(sid)
    out["id"] = sid
    out["code"] = normalize_code(out.get("code"))
    out["name"] = _clean(out.get("name"))
    out["leader"] = _clean(out.get("leader"))
    for coord in ("latitude", "longitude"):
        if coord in out:
            value = to_coordinate(out.get(coord))
            if value is None:
                out.pop(coord)
            else:
                out[coord] = value
    return out


def _normalize_branch(branch: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(branch)
    out["code"] = normalize_code(out.get("code"))
    out["name"] = _clean(out.get("name"))
    out["leader"] = _clean(out.get("leader"))
    taken: set = set()
    out["subBranches"] = [_normalize_sub_branch(sb, taken) for sb in (out.get("subBranches") or [])]
    return out


# ---------------------------------------------------------
# Read
# ---------------------------------------------------------
def list_branches() -> List[Dict[str, Any]]:
    data = database.get(KEYS["BRANCHES"], None)
    if not isinstance(data, list):
        return seeds.resolve(KEYS["BRANCHES"])
    return data


def save_branches(branches: List[Dict[str, Any]]) -> bool:
    return database.set(KEYS["BRANCHES"], list(branches))


def get_branch(branch_id: str, branches: Optional[List[Dict[str, Any]]] = None) -> Optional[Dict[str, Any]]:
    for b in branches if branches is not None else list_branches():
        if b.get("id") == branch_id:
            return b
    return None


def find_branch_by_code(code: Any, branches: Optional[List[Dict[str, Any]]] = None) -> Optional[Dict[str, Any]]:
    key = normalize_code(code)
    if not key:
        return None
    for b in branches if branches is not None else list_branches():
        if normalize_code(b.get("code")) == key:
            return b
    return None


def find_branch_by_name(name: Any, branches: Optional[List[Dict[str, Any]]] = None) -> Optional[Dict[str, Any]]:
    key = _name_key(name)
    if not key:
        return None
    for b in branches if branches is not None else list_branches():
        if _name_key(b.get("name")) == key:
            return b
    return None


# ---------------------------------------------------------
# Write
# ---------------------------------------------------------
def apply_upsert(branches: List[Dict[str, Any]], branch: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], str]:
    """
    Pure upsert: id present and known -> full replace in place; otherwise new id, appended.
    Returns (new list, branch id).
    """
    item = _normalize_branch(branch)
    result = list(branches)
    bid = _clean(item.get("id"))
    for i, b in enumerate(result):
        if bid and b.get("id") == bid:
            result[i] = item
            return result, bid
    item["id"] = id_generator.short_id("br", (b.get("id") for b in result))
    result.append(item)
    return result, item["id"]


def _first_clash(entries: List[Dict[str, Any]], old_names: Dict[Any, Any]) -> Optional[Dict[str, Any]]:
    """Entry whose name is new (added or renamed) and equal, up to case/spacing, to a sibling's name."""
    for i, e in enumerate(entries):
        key = _name_key(e.get("name"))
        if not key or old_names.get(e.get("id")) == e.get("name"):
            continue
        if any(j != i and _name_key(o.get("name")) == key for j, o in enumerate(entries)):
            return e
    return None


def name_conflict(old_list: List[Dict[str, Any]], new_list: List[Dict[str, Any]]) -> Optional[str]:
    """
    Members reference branches and sub-branches by name, so a save may not introduce a name that
    another branch (or another sub-branch of the same branch) still carries afterwards.
    Swaps and chains inside one save are fine; duplicates already stored are left alone.
    Returns the rejection message, or None.
    """
    old_by_id = {b.get("id"): b for b in old_list}
    clash = _first_clash(new_list, {b.get("id"): b.get("name") for b in old_list})
    if clash is not None:
        return f"Cabang '{clash.get('name')}' sudah ada."
    for b in new_list:
        old_subs = (old_by_id.get(b.get("id")) or {}).get("subBranches") or []
        clash = _first_clash(b.get("subBranches") or [], {sb.get("id"): sb.get("name") for sb in old_subs})
        if clash is not None:
            return f"Ranting '{clash.get('name')}' sudah ada di cabang {b.get('name')}."
    return None


def upsert_branch(branch: Dict[str, Any]) -> Tuple[bool, str, Optional[str]]:
    if not _clean(branch.get("name")):
        return False, "Nama cabang wajib diisi.", None
    branches = list_branches()
    new_list, bid = apply_upsert(branches, branch)
    conflict = name_conflict(branches, new_list)
    if conflict:
        return False, conflict, None
    if not save_branches(new_list):
        return False, STORE_FAIL_MSG, None
    return True, "Cabang disimpan.", bid


def delete_branch(branch_id: str) -> Tuple[bool, str]:
    """Remove the branch and its sub-branches. Members keep their branch string."""
    branches = list_branches()
    remaining = [b for b in branches if b.get("id") != branch_id]
    if len(remaining) == len(branches):
        return False, "Cabang tidak ditemukan."
    if not save_branches(remaining):
        return False, STORE_FAIL_MSG
    return True, "Cabang dihapus."


# --- Sub-branches (through the owning branch) ---
def with_sub_branch_added(branch: Dict[str, Any], sub: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(branch)
    taken = {sb.get("id") for sb in out.get("subBranches") or []}
    new_sub = dict(sub)
    new_sub["id"] = id_generator.short_id("sb", taken)
    out["subBranches"] = list(out.get("subBranches") or []) + [new_sub]
    return out


def with_sub_branch_updated(branch: Dict[str, Any], sub: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(branch)
    out["subBranches"] = [
        {**sb, **sub} if sb.get("id") == sub.get("id") else sb
        for sb in out.get("subBranches") or []
    ]
    return out


def _save_owner(branch: Dict[str, Any]) -> Tuple[bool, str, int]:
    import cascade  # cascade imports this module

    return cascade.save_branch(branch)


def add_sub_branch(branch_id: str, sub: Dict[str, Any]) -> Tuple[bool, str, Optional[str]]:
    branch = get_branch(branch_id)
    if branch is None:
        return False, "Cabang tidak ditemukan.", None
    if not _clean(sub.get("name")):
        return False, "Nama ranting wajib diisi.", None
    updated = with_sub_branch_added(branch, sub)
    ok, msg, _ = _save_owner(updated)
    if not ok:
        return False, msg, None
    return True, "Ranting ditambahkan.", updated["subBranches"][-1]["id"]


def update_sub_branch(branch_id: str, sub: Dict[str, Any]) -> Tuple[bool, str]:
    """Merge `sub` into the sub-branch with the same id. A name change cascades to its members."""
    branch = get_branch(branch_id)
    if branch is None:
        return False, "Cabang tidak ditemukan."
    if not any(sb.get("id") == sub.get("id") for sb in branch.get("subBranches") or []):
        return False, "Ranting tidak ditemukan."
    if "name" in sub and not _clean(sub.get("name")):
        return False, "Nama ranting wajib diisi."
    ok, msg, _ = _save_owner(with_sub_branch_updated(branch, sub))
    return (True, "Ranting diperbarui.") if ok else (False, msg)


def delete_sub_branch(branch_id: str, sub_id: str) -> Tuple[bool, str]:
    branch = get_branch(branch_id)
    if branch is None:
        return False, "Cabang tidak ditemukan."
    subs = branch.get("subBranches") or []
    kept = [sb for sb in subs if sb.get("id") != sub_id]
    if len(kept) == len(subs):
        return False, "Ranting tidak ditemukan."
    ok, msg, _ = _save_owner({**branch, "subBranches": kept})
    return (True, "Ranting dihapus.") if ok else (False, msg)


# ---------------------------------------------------------
# Bulk merge (spreadsheet import)
# ---------------------------------------------------------
def _match_branch(existing: List[Dict[str, Any]], incoming: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Key by code when the incoming row has one, else by name.
    A code miss falls back to the name, unless that branch already carries another code.
    """
    code = normalize_code(incoming.get("code"))
    if code:
        found = find_branch_by_code(code, existing)
        if found is not None:
            return found
    found = find_branch_by_name(incoming.get("name"), existing)
    if found is not None and code and normalize_code(found.get("code")):
        return None
    return found


def _match_sub_branch(subs: List[Dict[str, Any]], incoming: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    name = _name_key(incoming.get("name"))
    code = normalize_code(incoming.get("code"))
    for sb in subs:
        if name and _name_key(sb.get("name")) == name:
            return sb
    if code:
        for sb in subs:
            if normalize_code(sb.get("code")) == code:
                return sb
    return None


def _merge_fields(target: Dict[str, Any], incoming: Dict[str, Any], fields: Iterable[str]) -> bool:
    changed = False
    if _name_key(incoming.get("name")) == _name_key(target.get("name")):
        # same name up to case / spacing: keep the stored spelling
        incoming = {**incoming, "name": target.get("name")}
    for f in fields:
        value = incoming.get(f)
        if value is None or value == "":
            continue
        if target.get(f) != value:
            target[f] = value
            changed = True
    return changed


def merge_branches(existing: List[Dict[str, Any]],
                   incoming: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
    """
    Merge imported branches into the existing list (pure).
    - branch matched by code (else name): non-empty fields update it, ids are kept
    - sub-branch matched by name (else code) inside the branch: updated, else appended with a new id
    - unmatched branch: appended with a new id
    Importing the same sheet twice therefore yields the same directory.
    """
    stats = {"new_branch": 0, "update_branch": 0, "same_branch": 0, "new_sub": 0, "update_sub": 0}
    result = copy.deepcopy(existing)

    for raw in incoming:
        inc = _normalize_branch({**raw, "id": ""})
        target = _match_branch(result, inc)
        if target is None:
            result, _ = apply_upsert(result, inc)
            stats["new_branch"] += 1
            stats["new_sub"] += len(inc["subBranches"])
            continue

        changed = _merge_fields(target, inc, ("code", "name", "leader"))
        subs = target.setdefault("subBranches", [])
        taken = {sb.get("id") for sb in subs}
        for inc_sb in inc["subBranches"]:
            sb = _match_sub_branch(subs, inc_sb)
            if sb is None:
                new_sb = {**inc_sb, "id": id_generator.short_id("sb", taken)}
                taken.add(new_sb["id"])
                subs.append(new_sb)
                stats["new_sub"] += 1
                changed = True
            elif _merge_fields(sb, inc_sb, ("code", "name", "leader", "latitude", "longitude")):
                stats["update_sub"] += 1
                changed = True
        stats["update_branch" if changed else "same_branch"] += 1

    return result, stats


def bulk_merge_branches(incoming: List[Dict[str, Any]]) -> Tuple[bool, str, Dict[str, int]]:
    """Merge into the stored directory and persist. Renames picked up by the merge reach members too."""
    import cascade  # cascade imports this module

    merged, stats = merge_branches(list_branches(), incoming)
    ok, msg, affected = cascade.save_branch_list(merged)
    stats["members_updated"] = affected
    return ok, msg, stats


# ---------------------------------------------------------
# Map collaborator interface
# ---------------------------------------------------------
def mappable_sub_branches(branches: List[Dict[str, Any]], members: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Sub-branches carrying both coordinates, with branch name and member count."""
    out = []
    for b in branches:
        for sb in b.get("subBranches") or []:
            lat, lng = to_coordinate(sb.get("latitude")), to_coordinate(sb.get("longitude"))
            if lat is None or lng is None:
                continue
            count = sum(1 for m in members if m.get("branch") == b.get("name") and m.get("subBranch") == sb.get("name"))
            out.append({**sb, "latitude": lat, "longitude": lng, "branchName": b.get("name"), "memberCount": count})
    return out


def member_count(branch: Dict[str, Any], members: List[Dict[str, Any]], sub_name: Optional[str] = None) -> int:
    return sum(
        1 for m in members
        if m.get("branch") == branch.get("name") and (sub_name is None or m.get("subBranch") == sub_name)
    )
