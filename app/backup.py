"""
KBPC Backup / Restore
Payload: {users, branches, positions, belts, exportDate}
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Tuple, Union

import branches as branch_dir
import catalogs
import database
import members as member_repo
import seeds

logger = logging.getLogger(__name__)

KEYS = database.KEYS

# payload field -> store key
BACKUP_FIELDS = {
    "users": KEYS["USERS"],
    "branches": KEYS["BRANCHES"],
    "positions": KEYS["POSITIONS"],
    "belts": KEYS["BELTS"],
}


def export_backup() -> Dict[str, Any]:
    return {
        "users": member_repo.list_members(),
        "branches": branch_dir.list_branches(),
        "positions": catalogs.list_positions(),
        "belts": catalogs.list_belt_levels(),
        "exportDate": datetime.now().isoformat(timespec="seconds"),
    }


def export_backup_json() -> str:
    return json.dumps(export_backup(), ensure_ascii=False, indent=2)


def import_backup(payload: Union[str, bytes, Dict[str, Any]]) -> Tuple[bool, str]:
    """
    Restore a backup. Every top-level field present fully overwrites its store key;
    absent fields keep the stored value. All present fields are written in one transaction.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            logger.warning("backup payload is not JSON: %s", e)
            return False, "Gagal mengimpor database."
    if not isinstance(payload, dict):
        return False, "Gagal mengimpor database."

    items = {key: payload[field] for field, key in BACKUP_FIELDS.items() if field in payload}
    bad = [field for field, key in BACKUP_FIELDS.items() if key in items and not isinstance(items[key], list)]
    if bad:
        return False, "Format cadangan tidak valid: " + ", ".join(bad)
    if not items:
        return False, "Cadangan tidak berisi data."

    if not database.set_many(items):
        return False, "Penyimpanan gagal! Memori penyimpanan penuh."
    logger.info("backup restored: %s", ", ".join(sorted(items)))
    return True, "Database berhasil dipulihkan."


def reset_database(fetch_remote: bool = True) -> Tuple[bool, str]:
    """Wipe every key and run first-run initialization again."""
    if not database.clear_all():
        return False, "Reset database gagal."
    seeds.initialize(fetch_remote=fetch_remote)
    return True, "Database dikembalikan ke data awal."
