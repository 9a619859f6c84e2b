"""KBPC store check script

Usage:
  python db_health_check.py

- store file: ~/KBPC_Data/kbpc_local.db (DB_PATH in database.py)
- prints every stored key with payload size, entry count and last update
"""

import app_config
import database


def main():
    app_config.configure_logging()
    database.init_db()

    print(f"DB_PATH: {database.DB_PATH}\n")
    rows = database.list_keys()
    if not rows:
        print("(empty store: run the app once to write the defaults)")
        return

    print("[Keys]")
    for r in rows:
        value = database.get(r["key"], None)
        count = len(value) if isinstance(value, (list, dict)) else "-"
        print(f"- {r['key']}: entries={count} bytes={r['bytes']} updated={r['updated_at']}")

    missing = [k for k in database.KEYS.values() if not database.has(k)]
    if missing:
        print("\n[Missing]")
        for k in missing:
            print(f"- {k}")


if __name__ == "__main__":
    main()
