import argparse
import sys

from sqlfacade.common.db import Database
from sqlfacade.common.errors import DatabaseError
from sqlfacade.common.logging_setup import configure_logging
from sqlfacade.config.database import DEFAULT_CONFIG_PATH, load_database_config


def check(config_path: str, table: str = None) -> int:
    config = load_database_config(config_path)

    print("[*] Connecting to database...")
    with Database(config=config) as db:
        try:
            db.get_connection()
            print("[+] Connected.")

            row = db.query_one("SELECT 1 AS connected")
            print(f"[+] SELECT 1 -> {row}")

            if table:
                total = db.query_one(f"SELECT COUNT(*) AS total FROM {table}")
                print(f"[+] {table}: {total['total'] if total else 0} rows")
        except DatabaseError as e:
            print(f"[!] Check failed ({e.kind.value}): {e}")
            print(f"    last error: {db.get_last_error()}")
            return 1

        print(f"[*] {db.get_query_counter()} queries executed")
        for record in db.get_queries():
            print(f"  - [{record.duration_ms} ms] {record.sql}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Database connectivity check")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH)
    parser.add_argument("--table", help="optional table to count rows in")
    args = parser.parse_args()

    configure_logging()
    sys.exit(check(args.config, args.table))
