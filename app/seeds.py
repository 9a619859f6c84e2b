"""
KBPC First-run Defaults
Resolution order per store key, executed once at process start by initialize():
    local store -> remote seed document -> hardcoded baseline
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Optional

import requests

import app_config
import database

logger = logging.getLogger(__name__)

KEYS = database.KEYS

# ---------------------------------------------------------
# Hardcoded baseline
# ---------------------------------------------------------
INITIAL_BELT_LEVELS = [
    {"name": "Dasar", "color": "#cbd5e1", "predicate": "Budaya"},
    {"name": "Kuning", "color": "#fbbf24", "predicate": "Wira Putra"},
    {"name": "Kuning Plat Hijau", "color": "#eab308", "predicate": "Wira Muda Madya"},
    {"name": "Hijau", "color": "#10b981", "predicate": "Wira Muda"},
    {"name": "Hijau Plat Biru", "color": "#059669", "predicate": "Wira Utama Madya"},
    {"name": "Biru", "color": "#3b82f6", "predicate": "Wira Utama"},
    {"name": "Biru Plat Cokelat", "color": "#2563eb", "predicate": "Satria Muda Madya"},
    {"name": "Cokelat", "color": "#92400e", "predicate": "Satria Muda"},
    {"name": "Hitam", "color": "#0f172a", "predicate": "Satria Utama"},
    {"name": "Merah Kecil", "color": "#ef4444", "predicate": "Pendekar Muda"},
    {"name": "Merah Besar", "color": "#b91c1c", "predicate": "Guru Besar"},
]

POSITIONS = [
    "Pembina",
    "Ketua Cabang",
    "Ketua DPC",
    "Sekretaris",
    "Bendahara",
    "Koordinator Biro Prestasi",
    "Koordinator Biro Tradisi",
    "Koordinator Pembinaan Mental dan Spiritual",
    "Koordinator Biro Hubungan Masyarakat",
    "Koordinator Biro Penelitian dan Pengembangan",
    "Anggota Biro Prestasi",
    "Anggota Biro Tradisi",
    "Anggota Pembinaan Mental dan Spiritual",
    "Pelatih",
    "Anggota",
]

INITIAL_BRANCHES = [
    {
        "id": "br-001",
        "code": "01",
        "name": "Bogor Barat",
        "leader": "Budi Santoso",
        "subBranches": [
            {"id": "sb-001", "code": "01", "name": "Bubulak", "leader": "Agus"},
            {"id": "sb-002", "code": "02", "name": "Cifor", "leader": "Sari"},
            {"id": "sb-003", "code": "03", "name": "Semplak", "leader": "Doni"},
        ],
    },
    {
        "id": "br-002",
        "code": "02",
        "name": "Bogor Tengah",
        "leader": "Ahmad Fauzi",
        "subBranches": [
            {"id": "sb-004", "code": "01", "name": "Sempur", "leader": "Eka"},
            {"id": "sb-005", "code": "02", "name": "Pabaton", "leader": "Wati"},
        ],
    },
]

INITIAL_USERS = [
    {
        "id": "admin-001",
        "username": "admin",
        "password": "password",
        "name": "Administrator Utama",
        "email": "admin@kbpcbogor.com",
        "role": "ADMIN",
        "position": "Pembina",
        "joinDate": "2024-01-01",
        "status": "Active",
        "avatar": "https://ui-avatars.com/api/?name=Admin&background=4f46e5&color=fff",
        "isCoach": False,
        "beltLevel": "Hitam",
        "predicate": "Satria Utama",
        "gender": "Laki-laki",
        "branch": "Bogor Barat",
        "subBranch": "Bubulak",
        "kecamatan": "",
    },
    {
        "id": "1",
        "username": "budi_s",
        "password": "password",
        "name": "Budi Santoso",
        "email": "budi@kbpcbogor.com",
        "role": "ADMIN",
        "position": "Ketua Cabang",
        "joinDate": "2023-01-15",
        "status": "Active",
        "avatar": "https://picsum.photos/seed/budi/100/100",
        "isCoach": True,
        "beltLevel": "Hitam",
        "predicate": "Satria Utama",
        "gender": "Laki-laki",
        "branch": "Bogor Barat",
        "subBranch": "Bubulak",
        "kecamatan": "",
    },
    {
        "id": "2",
        "username": "sari_w",
        "password": "password",
        "name": "Sari Wijaya",
        "email": "sari@kbpcbogor.com",
        "role": "PENGURUS",
        "position": "Sekretaris",
        "joinDate": "2023-02-20",
        "status": "Active",
        "avatar": "https://picsum.photos/seed/sari/100/100",
        "isCoach": False,
        "beltLevel": "Biru",
        "predicate": "Wira Utama",
        "gender": "Perempuan",
        "branch": "Bogor Barat",
        "subBranch": "Cifor",
        "kecamatan": "",
    },
]

BASELINE = {
    KEYS["USERS"]: INITIAL_USERS,
    KEYS["BRANCHES"]: INITIAL_BRANCHES,
    KEYS["POSITIONS"]: POSITIONS,
    KEYS["BELTS"]: INITIAL_BELT_LEVELS,
}

# remote seed document field -> store key
REMOTE_FIELDS = {
    "users": KEYS["USERS"],
    "branches": KEYS["BRANCHES"],
    "positions": KEYS["POSITIONS"],
    "belts": KEYS["BELTS"],
}


def fetch_remote_seed(url: Optional[str] = None, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
    """
    Download the remote seed document. Any failure (network, HTTP status, bad JSON)
    is logged and swallowed: the caller falls through to the hardcoded baseline.
    """
    url = url if url is not None else app_config.get_setting("remote_seed_url")
    if not url:
        return None
    timeout = timeout if timeout is not None else float(app_config.get_setting("remote_seed_timeout") or 5)
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("remote seed unreachable (%s): %s", url, e)
        return None
    if not isinstance(data, dict):
        logger.warning("remote seed ignored: expected an object, got %s", type(data).__name__)
        return None
    return data


def _remote_value(seed: Optional[Dict[str, Any]], key: str) -> Any:
    if not seed:
        return None
    for field, store_key in REMOTE_FIELDS.items():
        if store_key == key and isinstance(seed.get(field), list):
            return seed[field]
    return None


def resolve(key: str) -> Any:
    """
    Default for a store key that is still absent: cached remote seed, else baseline.
    Returns a fresh copy (callers mutate the lists they get).
    """
    value = _remote_value(database.get(KEYS["SEED"], None), key)
    if value is None:
        value = BASELINE.get(key, [])
    return copy.deepcopy(value)


def initialize(fetch_remote: bool = True) -> Dict[str, str]:
    """
    [Startup lifecycle] run once at process start.
    Every catalog key missing from the local store is written from the remote seed
    (cached under the seed key) or the hardcoded baseline.
    Returns {store_key: "store" | "remote" | "baseline"}.
    """
    database.init_db()
    missing = [k for k in BASELINE if not database.has(k)]
    origin = {k: "store" for k in BASELINE if k not in missing}
    if not missing:
        return origin

    seed = database.get(KEYS["SEED"], None)
    if seed is None and fetch_remote:
        seed = fetch_remote_seed()
        if seed is not None and not database.set(KEYS["SEED"], seed):
            logger.warning("remote seed fetched but could not be cached")

    to_write = {}
    for k in missing:
        value = _remote_value(seed, k)
        if value is not None:
            origin[k] = "remote"
        else:
            value = copy.deepcopy(BASELINE[k])
            origin[k] = "baseline"
        to_write[k] = value

    if not database.set_many(to_write):
        logger.warning("seed defaults could not be persisted; lists fall back to defaults on read")
    logger.info("store initialized: %s", origin)
    return origin
