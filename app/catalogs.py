"""
KBPC Catalogs (Jabatan / Tingkat Sabuk)
Flat Admin-managed pick-lists referenced by value from member records.

- save_* is a full-list overwrite with no uniqueness check; add/delete helpers pre-validate.
- Renames live in cascade.py because they must rewrite members in the same write.
- Deleting an entry never touches members (retired from the pick-list only).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import database
import seeds

KEYS = database.KEYS

DEFAULT_BELT_COLOR = "#cbd5e1"


def _clean(x: Any) -> str:
    return str(x or "").strip()


# --- Positions ---
def list_positions() -> List[str]:
    data = database.get(KEYS["POSITIONS"], None)
    if not isinstance(data, list):
        return seeds.resolve(KEYS["POSITIONS"])
    return data


def save_positions(positions: List[str]) -> bool:
    return database.set(KEYS["POSITIONS"], list(positions))


def add_position(name: str) -> Tuple[bool, str]:
    name = _clean(name)
    if not name:
        return False, "Nama jabatan wajib diisi."
    positions = list_positions()
    if name in positions:
        return False, f"Jabatan '{name}' sudah ada."
    if not save_positions(positions + [name]):
        return False, "Penyimpanan gagal! Memori penyimpanan penuh."
    return True, "Jabatan ditambahkan."


def delete_position(name: str) -> Tuple[bool, str]:
    positions = list_positions()
    if name not in positions:
        return False, f"Jabatan '{name}' tidak ditemukan."
    if not save_positions([p for p in positions if p != name]):
        return False, "Penyimpanan gagal! Memori penyimpanan penuh."
    return True, "Jabatan dihapus."


# --- Belt levels ---
def list_belt_levels() -> List[Dict[str, Any]]:
    data = database.get(KEYS["BELTS"], None)
    if not isinstance(data, list):
        return seeds.resolve(KEYS["BELTS"])
    return data


def save_belt_levels(belts: List[Dict[str, Any]]) -> bool:
    return database.set(KEYS["BELTS"], list(belts))


def make_belt_level(name: Any, color: Any = None, predicate: Any = None) -> Dict[str, str]:
    """Normalized {name, color, predicate}; an empty predicate becomes '-'."""
    return {
        "name": _clean(name),
        "color": _clean(color) or DEFAULT_BELT_COLOR,
        "predicate": _clean(predicate) or "-",
    }


def find_belt_level(name: str, belts: Optional[List[Dict[str, Any]]] = None) -> Optional[Dict[str, Any]]:
    for b in belts if belts is not None else list_belt_levels():
        if b.get("name") == name:
            return b
    return None


def add_belt_level(name: str, color: str = DEFAULT_BELT_COLOR, predicate: str = "") -> Tuple[bool, str]:
    belt = make_belt_level(name, color, predicate)
    if not belt["name"]:
        return False, "Nama tingkat sabuk wajib diisi."
    belts = list_belt_levels()
    if find_belt_level(belt["name"], belts):
        return False, f"Tingkat sabuk '{belt['name']}' sudah ada."
    if not save_belt_levels(belts + [belt]):
        return False, "Penyimpanan gagal! Memori penyimpanan penuh."
    return True, "Tingkat sabuk ditambahkan."


def delete_belt_level(name: str) -> Tuple[bool, str]:
    belts = list_belt_levels()
    if not find_belt_level(name, belts):
        return False, f"Tingkat sabuk '{name}' tidak ditemukan."
    if not save_belt_levels([b for b in belts if b.get("name") != name]):
        return False, "Penyimpanan gagal! Memori penyimpanan penuh."
    return True, "Tingkat sabuk dihapus."
