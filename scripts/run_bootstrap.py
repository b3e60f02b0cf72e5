"""
Command line entry point for bootstrapping or tearing down a DuckDB schema.

The runner reads an optional JSON config (``-c``), applies ``--set`` variable
overrides, parses the SQL definition sources and then performs one action:

* ``create`` - drop the known objects and recreate them in one transaction,
* ``drop`` - drop every known table and view in one transaction,
* ``create-database`` - run the batched three-phase creation,
* ``show`` - print the discovered names and per-source drop blocks.
"""
import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import duckdb
from tqdm import tqdm

from bootstrap_config import apply_overrides, load_json, resolve_config
from bootstrap_log import timestamped
from create_database import InvalidCommandError
from duckdb_store import DuckDBStore, configure_connection
from schema_database import Database

ACTIONS = ("create", "drop", "create-database", "show")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or drop a DuckDB schema from SQL definition files")
    parser.add_argument("action", choices=ACTIONS, help="Administrative action to run")
    parser.add_argument("sources", nargs="*", help="SQL definition files or URLs (default: config sources)")
    parser.add_argument("-c", "--config", dest="config", help="Bootstrap config json")
    parser.add_argument("--database", dest="database", help="DuckDB database path (overrides config)")
    parser.add_argument(
        "--set",
        dest="variable_overrides",
        action="append",
        default=[],
        metavar="VAR=VALUE",
        help="Override config variables (repeatable), e.g. --set @data_dir=/tmp/data",
    )
    parser.add_argument(
        "--no-batch",
        dest="batch_updates",
        action="store_false",
        default=None,
        help="Execute create-database statements one by one instead of batching",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Dict[str, Any]:
    config: Dict[str, Any] = {}
    if args.config:
        if not Path(args.config).exists():
            raise FileNotFoundError(args.config)
        config = load_json(args.config)
    config = apply_overrides(config, args.variable_overrides)
    if args.sources:
        config["sources"] = list(args.sources)
    if args.database:
        config = {**config, "duckdb": {**config.get("duckdb", {}), "database": args.database}}
    if args.batch_updates is not None:
        config["batch_updates"] = args.batch_updates
    return resolve_config(config)


def ensure_parent(db_path: str) -> None:
    if db_path and db_path != ":memory:":
        Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)


def show(database: Database) -> bool:
    print(f"Tables: {', '.join(database.table_names())}")
    print(f"Views: {', '.join(database.view_names())}")
    for index, definition in enumerate(database.definitions()):
        print(f"-- source {index}: {definition.source}")
        print(definition.drop_sql or "-- (no new objects)")
    return True


def run_transactional(action: str, database: Database, config: Dict[str, Any]) -> bool:
    duck_conf = config.get("duckdb", {})
    db_path = str(duck_conf.get("database"))
    ensure_parent(db_path)
    con = duckdb.connect(db_path)
    try:
        configure_connection(con, duck_conf, config.get("variables", {}))
        if action == "drop":
            return database.drop(con, log=lambda m: print(timestamped(m)))
        with tqdm(total=database.source_count(), desc="Schema bootstrap", unit="source") as progress:
            return database.create(
                con,
                log=lambda m: progress.write(timestamped(m)),
                progress_cb=lambda: progress.update(1),
            )
    finally:
        con.close()


def run_batched(database: Database, config: Dict[str, Any]) -> bool:
    duck_conf = config.get("duckdb", {})
    db_path = str(duck_conf.get("database"))
    ensure_parent(db_path)
    store = DuckDBStore(
        db_path,
        batch_updates=bool(config.get("batch_updates", True)),
        settings=duck_conf,
        variables=config.get("variables", {}),
    )
    creator = database.to_create_database()
    return creator.create_database(store, log=lambda m: print(timestamped(m)))


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = build_config(args)
    database = Database(*config["sources"])

    if args.action == "show":
        ok = show(database)
    elif args.action == "create-database":
        try:
            ok = run_batched(database, config)
        except InvalidCommandError as exc:
            print(f"Definitions are not usable for batched creation: {exc}", file=sys.stderr)
            return 2
    else:
        ok = run_transactional(args.action, database, config)

    print(timestamped(f"{args.action}: {'ok' if ok else 'failed'}"))
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
