"""
KBPC Cascade Coordinator
A rename of a position, belt level, branch or sub-branch rewrites every member whose
field equals the old value (exact, case-sensitive). The catalog list and the member
list are written in ONE store transaction, so a failed write leaves both untouched.

Deletes never pass through here: members keep the retired value (soft orphan).
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Tuple

import branches as branch_dir
import catalogs
import database
import members as member_repo

logger = logging.getLogger(__name__)

KEYS = database.KEYS

STORE_FAIL_MSG = "Penyimpanan gagal! Memori penyimpanan penuh."


def cascade_members(members: List[Dict[str, Any]], match: Dict[str, Any],
                    updates: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Members matching every (field, value) in `match` get `updates` applied.
    Returns (new list, affected ids); input list is not mutated.
    """
    result, affected = [], []
    for m in members:
        if all(m.get(f) == v for f, v in match.items()):
            result.append({**m, **updates})
            affected.append(m.get("id"))
        else:
            result.append(m)
    return result, affected


def _commit(catalog_key: str, catalog_value: Any, new_members: List[Dict[str, Any]],
            affected: List[str], label: str) -> Tuple[bool, str, int]:
    items = {catalog_key: catalog_value}
    if affected:
        items[KEYS["USERS"]] = new_members
    if not database.set_many(items):
        return False, STORE_FAIL_MSG, 0
    if affected:
        logger.info("%s: %d member(s) updated", label, len(affected))
    msg = f"{label} disimpan." + (f" {len(affected)} anggota diperbarui." if affected else "")
    return True, msg, len(affected)


# ---------------------------------------------------------
# Positions
# ---------------------------------------------------------
def rename_position(old: str, new: str) -> Tuple[bool, str, int]:
    new = (new or "").strip()
    if not new:
        return False, "Nama jabatan wajib diisi.", 0
    positions = catalogs.list_positions()
    if old not in positions:
        return False, f"Jabatan '{old}' tidak ditemukan.", 0
    if new != old and new in positions:
        return False, f"Jabatan '{new}' sudah ada.", 0

    new_positions = [new if p == old else p for p in positions]
    new_members, affected = cascade_members(member_repo.list_members(), {"position": old}, {"position": new})
    return _commit(KEYS["POSITIONS"], new_positions, new_members, affected, "Jabatan")


# ---------------------------------------------------------
# Belt levels
# ---------------------------------------------------------
def update_belt_level(old_name: str, new_belt: Dict[str, Any]) -> Tuple[bool, str, int]:
    """
    Replace the belt level named `old_name`. Members on it get the new name and predicate,
    also when only the predicate changed.
    """
    belt = catalogs.make_belt_level(new_belt.get("name"), new_belt.get("color"), new_belt.get("predicate"))
    if not belt["name"]:
        return False, "Nama tingkat sabuk wajib diisi.", 0
    belts = catalogs.list_belt_levels()
    if catalogs.find_belt_level(old_name, belts) is None:
        return False, f"Tingkat sabuk '{old_name}' tidak ditemukan.", 0
    if belt["name"] != old_name and catalogs.find_belt_level(belt["name"], belts):
        return False, f"Tingkat sabuk '{belt['name']}' sudah ada.", 0

    new_belts = [belt if b.get("name") == old_name else b for b in belts]
    new_members, affected = cascade_members(
        member_repo.list_members(),
        {"beltLevel": old_name},
        {"beltLevel": belt["name"], "predicate": belt["predicate"]},
    )
    return _commit(KEYS["BELTS"], new_belts, new_members, affected, "Tingkat sabuk")


# ---------------------------------------------------------
# Branches / sub-branches
# ---------------------------------------------------------
def _rename_maps(old_list: List[Dict[str, Any]], new_list: List[Dict[str, Any]]) -> Tuple[Dict[str, str], Dict[Tuple[str, str], str]]:
    """
    Renames detected by id, keyed by the OLD names:
    - branch map: old branch name -> new name
    - sub map: (old branch name, old sub-branch name) -> new sub-branch name
    """
    old_by_id = {b.get("id"): b for b in old_list}
    branch_map: Dict[str, str] = {}
    sub_map: Dict[Tuple[str, str], str] = {}
    for nb in new_list:
        ob = old_by_id.get(nb.get("id"))
        if ob is None:
            continue
        old_subs = {sb.get("id"): sb for sb in ob.get("subBranches") or []}
        for nsb in nb.get("subBranches") or []:
            osb = old_subs.get(nsb.get("id"))
            if osb is not None and osb.get("name") != nsb.get("name"):
                sub_map[(ob.get("name"), osb.get("name"))] = nsb.get("name")
        if ob.get("name") != nb.get("name"):
            branch_map[ob.get("name")] = nb.get("name")
    return branch_map, sub_map


def rename_members(members: List[Dict[str, Any]], branch_map: Dict[str, str],
                   sub_map: Dict[Tuple[str, str], str]) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Apply branch / sub-branch renames in one pass over the ORIGINAL values, so swaps and
    chains (A->B, B->A) land each member exactly once. Input list is not mutated.
    """
    result, affected = [], []
    for m in members:
        branch, sub = m.get("branch"), m.get("subBranch")
        updates = {}
        if (branch, sub) in sub_map:
            updates["subBranch"] = sub_map[(branch, sub)]
        if branch in branch_map:
            updates["branch"] = branch_map[branch]
        if updates:
            result.append({**m, **updates})
            affected.append(m.get("id"))
        else:
            result.append(m)
    return result, affected


def save_branch_list(new_list: List[Dict[str, Any]]) -> Tuple[bool, str, int]:
    """Persist a full branch list; renames against the stored list cascade to members."""
    old_list = branch_dir.list_branches()
    conflict = branch_dir.name_conflict(old_list, new_list)
    if conflict:
        return False, conflict, 0
    branch_map, sub_map = _rename_maps(old_list, new_list)
    new_members, affected = rename_members(member_repo.list_members(), branch_map, sub_map)
    return _commit(KEYS["BRANCHES"], list(new_list), new_members, affected, "Struktur cabang")


def save_branch(branch: Dict[str, Any]) -> Tuple[bool, str, int]:
    """Upsert one branch (with its sub-branches) and cascade any renames detected by id."""
    if not (branch.get("name") or "").strip():
        return False, "Nama cabang wajib diisi.", 0
    new_list, _ = branch_dir.apply_upsert(branch_dir.list_branches(), branch)
    return save_branch_list(new_list)


def rename_branch(branch_id: str, new_name: str) -> Tuple[bool, str, int]:
    branch = branch_dir.get_branch(branch_id)
    if branch is None:
        return False, "Cabang tidak ditemukan.", 0
    return save_branch({**copy.deepcopy(branch), "name": new_name})


def rename_sub_branch(branch_id: str, sub_id: str, new_name: str) -> Tuple[bool, str, int]:
    branch = branch_dir.get_branch(branch_id)
    if branch is None:
        return False, "Cabang tidak ditemukan.", 0
    if not any(sb.get("id") == sub_id for sb in branch.get("subBranches") or []):
        return False, "Ranting tidak ditemukan.", 0
    if not (new_name or "").strip():
        return False, "Nama ranting wajib diisi.", 0
    return save_branch(branch_dir.with_sub_branch_updated(branch, {"id": sub_id, "name": new_name.strip()}))
