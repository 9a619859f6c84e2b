"""
KBPC Member Repository
Member records hold catalog and branch references BY VALUE (position, beltLevel,
predicate, branch, subBranch are plain strings). Keeping them in step with the
catalogs is cascade.py's job.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote_plus

import app_config
import branches as branch_dir
import catalogs
import database
import id_generator
import seeds

logger = logging.getLogger(__name__)

KEYS = database.KEYS

ROLES = ["ADMIN", "PENGURUS", "ANGGOTA"]
STATUSES = ["Active", "Inactive", "Pending"]
GENDERS = ["Laki-laki", "Perempuan"]

# fields a member may change on their own profile page
PROFILE_FIELDS = ("name", "email", "password", "avatar", "formalPhoto", "informalPhoto", "kecamatan")

# action -> roles allowed (UI gate, checked before the mutation)
PERMISSIONS = {
    "dashboard": {"ADMIN", "PENGURUS", "ANGGOTA"},
    "profile": {"ADMIN", "PENGURUS", "ANGGOTA"},
    "members": {"ADMIN", "PENGURUS"},
    "edit_member": {"ADMIN", "PENGURUS"},
    "export": {"ADMIN", "PENGURUS"},
    "delete_member": {"ADMIN"},
    "import": {"ADMIN"},
    "branches": {"ADMIN"},
    "positions": {"ADMIN"},
    "belt_levels": {"ADMIN"},
    "backup": {"ADMIN"},
}

STORE_FAIL_MSG = "Penyimpanan gagal! Memori penyimpanan penuh."


def _clean(x: Any) -> str:
    return str(x or "").strip()


def avatar_url(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote_plus(name or 'Anggota')}&background=random"


# ---------------------------------------------------------
# Read
# ---------------------------------------------------------
def list_members() -> List[Dict[str, Any]]:
    data = database.get(KEYS["USERS"], None)
    if not isinstance(data, list):
        return seeds.resolve(KEYS["USERS"])
    return data


def save_members(members: List[Dict[str, Any]]) -> bool:
    return database.set(KEYS["USERS"], list(members))


def get_member(member_id: str, members: Optional[List[Dict[str, Any]]] = None) -> Optional[Dict[str, Any]]:
    for m in members if members is not None else list_members():
        if m.get("id") == member_id:
            return m
    return None


# ---------------------------------------------------------
# Write
# ---------------------------------------------------------
def apply_upsert(members: List[Dict[str, Any]], member: Dict[str, Any],
                 previous_id: Optional[str] = None) -> Tuple[Optional[List[Dict[str, Any]]], str]:
    """
    Pure upsert. Returns (new list, status) with status 'new' / 'update',
    or (None, reason) when the id reassignment collides with another member.
    """
    lookup_id = previous_id if previous_id else member.get("id")
    new_id = member.get("id")
    result = list(members)

    idx = next((i for i, m in enumerate(result) if m.get("id") == lookup_id), None)

    if new_id and new_id != lookup_id:
        holder = get_member(new_id, result)
        if holder is not None:
            return None, f"NIA '{new_id}' sudah dipakai oleh {holder.get('name', '-')}."

    if idx is None:
        result.append(dict(member))
        return result, "new"
    result[idx] = {**result[idx], **member}
    return result, "update"


def upsert_member(member: Dict[str, Any], previous_id: Optional[str] = None) -> Tuple[bool, str]:
    if not _clean(member.get("id")):
        return False, "NIA wajib diisi."
    new_list, status = apply_upsert(list_members(), member, previous_id)
    if new_list is None:
        return False, status
    if not save_members(new_list):
        return False, STORE_FAIL_MSG
    return True, "Data Anggota Berhasil Disimpan." if status == "new" else "Perubahan Berhasil Disimpan."


def delete_member(member_id: str) -> Tuple[bool, str]:
    members = list_members()
    remaining = [m for m in members if m.get("id") != member_id]
    if len(remaining) == len(members):
        return False, "Anggota tidak ditemukan."
    if not save_members(remaining):
        return False, STORE_FAIL_MSG
    return True, "Anggota dihapus."


def generate_next_id() -> str:
    return id_generator.next_member_id([m.get("id") for m in list_members()])


def build_member(data: Dict[str, Any], member_id: Optional[str] = None) -> Dict[str, Any]:
    """New member record with every field filled (catalog defaults = first entry)."""
    positions = catalogs.list_positions()
    belts = catalogs.list_belt_levels()
    branch_list = branch_dir.list_branches()

    belt_name = _clean(data.get("beltLevel")) or (belts[0]["name"] if belts else "")
    belt = catalogs.find_belt_level(belt_name, belts)
    name = _clean(data.get("name")) or "Anggota Baru"
    role = _clean(data.get("role")).upper()
    mid = member_id or _clean(data.get("id")) or generate_next_id()

    return {
        "id": mid,
        "username": _clean(data.get("username")) or mid.lower(),
        "password": data.get("password") or app_config.get_setting("default_password") or "password",
        "name": name,
        "email": _clean(data.get("email")),
        "role": role if role in ROLES else "ANGGOTA",
        "position": _clean(data.get("position")) or (positions[0] if positions else ""),
        "joinDate": _clean(data.get("joinDate")) or date.today().isoformat(),
        "status": data.get("status") if data.get("status") in STATUSES else "Active",
        "avatar": data.get("avatar") or avatar_url(name),
        "isCoach": bool(data.get("isCoach", False)),
        "beltLevel": belt_name,
        "predicate": _clean(data.get("predicate")) or (belt["predicate"] if belt else "Baru"),
        "gender": "Perempuan" if data.get("gender") == "Perempuan" else "Laki-laki",
        "branch": _clean(data.get("branch")) or (branch_list[0]["name"] if branch_list else ""),
        "subBranch": _clean(data.get("subBranch")),
        "kecamatan": _clean(data.get("kecamatan")),
    }


def create_member(data: Dict[str, Any]) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    member = build_member(data)
    ok, msg = upsert_member(member)
    return ok, msg, (member if ok else None)


def register_member(name: str, username: str, email: str) -> Tuple[bool, str]:
    """Self-registration; the account waits for an Admin to activate it."""
    name, username = _clean(name), _clean(username)
    if not name or not username:
        return False, "Nama dan username wajib diisi."
    if any(_clean(m.get("username")).lower() == username.lower() for m in list_members()):
        return False, f"Username '{username}' sudah terdaftar."
    ok, msg, _ = create_member({"name": name, "username": username, "email": email, "status": "Pending"})
    if not ok:
        return False, msg
    return True, "Pendaftaran berhasil. Akun Anda menunggu verifikasi pengurus."


def update_profile(member_id: str, changes: Dict[str, Any]) -> Tuple[bool, str]:
    allowed = {k: v for k, v in changes.items() if k in PROFILE_FIELDS}
    if "password" in allowed and not _clean(allowed["password"]):
        allowed.pop("password")
    if get_member(member_id) is None:
        return False, "Anggota tidak ditemukan."
    return upsert_member({"id": member_id, **allowed})


# ---------------------------------------------------------
# Authentication / permission
# ---------------------------------------------------------
def authenticate(username: str, password: str) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    key = _clean(username).lower()
    user = next(
        (u for u in list_members()
         if _clean(u.get("username")).lower() == key or _clean(u.get("id")).lower() == key),
        None,
    )
    if user is None:
        return False, "Username tidak ditemukan.", None
    if user.get("password") and user.get("password") != password:
        return False, "Kata sandi salah.", None
    if user.get("status") == "Pending":
        return False, "Akun Anda masih menunggu verifikasi.", None
    logger.info("login: %s", user.get("id"))
    return True, f"Selamat datang, {user.get('name')}!", user


def is_allowed(role: Optional[str], action: str) -> bool:
    return role in PERMISSIONS.get(action, set())


# ---------------------------------------------------------
# Views
# ---------------------------------------------------------
SEARCH_FIELDS = ("name", "username", "email", "position", "beltLevel", "branch", "subBranch")


def search_members(members: List[Dict[str, Any]], term: str) -> List[Dict[str, Any]]:
    t = _clean(term).lower()
    if not t:
        return list(members)
    return [m for m in members if any(t in str(m.get(f) or "").lower() for f in SEARCH_FIELDS)]


def member_stats(members: List[Dict[str, Any]], belts: List[Dict[str, Any]]) -> Dict[str, Any]:
    total = len(members)
    distribution = []
    for b in belts:
        count = sum(1 for m in members if m.get("beltLevel") == b.get("name"))
        distribution.append({
            "name": b.get("name"),
            "color": b.get("color"),
            "count": count,
            "percentage": (count / total * 100) if total else 0.0,
        })
    return {
        "total": total,
        "admins": sum(1 for m in members if m.get("role") == "ADMIN"),
        "pengurus": sum(1 for m in members if m.get("role") == "PENGURUS"),
        "active": sum(1 for m in members if m.get("status") == "Active"),
        "belt_distribution": distribution,
    }
