from __future__ import annotations

import importlib
import io
import sys
import unittest
from pathlib import Path

import duckdb

SCRIPTS_DIR = Path(__file__).resolve().parents[2] / "scripts"


def load_module(name: str):
    if str(SCRIPTS_DIR) not in sys.path:
        sys.path.insert(0, str(SCRIPTS_DIR))
    return importlib.import_module(name)


TABLES = """CREATE TABLE IF NOT EXISTS Person (
  id INTEGER PRIMARY KEY,
  name VARCHAR NOT NULL
);
CREATE TABLE IF NOT EXISTS Skill (
  id INTEGER PRIMARY KEY,
  name VARCHAR NOT NULL
);
"""

VIEWS = """CREATE OR REPLACE VIEW PersonNames AS
SELECT name FROM Person;
"""

SEED = """INSERT INTO Skill (id, name) VALUES
  (1, 'Battle'),
  (2, 'Discipline');
"""

BROKEN = """CREATE TABLE Broken (
  id NOSUCHTYPE
);
"""


def relations(con: duckdb.DuckDBPyConnection) -> list[tuple[str, str]]:
    rows = con.execute(
        """
        SELECT table_name, table_type
        FROM information_schema.tables
        WHERE table_schema = 'main'
        ORDER BY table_name
        """
    ).fetchall()
    return [(r[0], r[1]) for r in rows]


class TestDatabaseConstruction(unittest.TestCase):
    def setUp(self) -> None:
        self.Database = load_module("schema_database").Database

    def test_names_accumulate_across_sources_in_first_seen_order(self) -> None:
        db = self.Database(io.StringIO(TABLES), io.StringIO(VIEWS), io.StringIO(TABLES + SEED))
        self.assertEqual(db.table_names(), ["Person", "Skill"])
        self.assertEqual(db.view_names(), ["PersonNames"])
        self.assertEqual(db.populated_tables(), ["Skill"])
        self.assertEqual(db.source_count(), 3)
        self.assertIsNone(db.drop_sql(2))
        self.assertEqual(db.drop_sql(1), "DROP VIEW IF EXISTS PersonNames CASCADE;\n")
        self.assertEqual(db.populate_sql(2), SEED)

    def test_returned_name_lists_are_copies(self) -> None:
        db = self.Database(io.StringIO(TABLES))
        names = db.table_names()
        names.append("Injected")
        self.assertEqual(db.table_names(), ["Person", "Skill"])

    def test_out_of_range_blocks_are_absent(self) -> None:
        db = self.Database(io.StringIO(TABLES))
        self.assertIsNone(db.create_sql(5))
        self.assertIsNone(db.populate_sql(-1))
        self.assertIsNone(db.drop_sql(1))

    def test_unreadable_source_does_not_stop_later_sources(self) -> None:
        messages: list[str] = []
        db = self.Database("/nonexistent/tables.sql", io.StringIO(TABLES), log=messages.append)
        self.assertEqual(db.source_count(), 2)
        self.assertIsNone(db.create_sql(0))
        self.assertEqual(db.table_names(), ["Person", "Skill"])
        self.assertTrue(any("/nonexistent/tables.sql" in m for m in messages))

    def test_default_sources_describe_the_character_schema(self) -> None:
        db = self.Database()
        self.assertEqual(db.table_names(), ["Person", "Motivation", "PersonMotivations"])
        self.assertEqual(db.view_names(), ["PersonMotivationView"])
        self.assertEqual(db.populated_tables(), ["Motivation"])


class TestDatabaseTransactions(unittest.TestCase):
    def setUp(self) -> None:
        self.Database = load_module("schema_database").Database
        self.con = duckdb.connect()

    def tearDown(self) -> None:
        self.con.close()

    def test_create_builds_and_populates_every_source(self) -> None:
        db = self.Database(io.StringIO(TABLES + SEED), io.StringIO(VIEWS))
        self.assertTrue(db.create(self.con))
        self.assertEqual(
            relations(self.con),
            [("Person", "BASE TABLE"), ("PersonNames", "VIEW"), ("Skill", "BASE TABLE")],
        )
        self.assertEqual(self.con.execute("SELECT COUNT(*) FROM Skill").fetchone()[0], 2)

    def test_create_populates_insert_only_sources(self) -> None:
        db = self.Database(io.StringIO(TABLES), io.StringIO(SEED))
        self.assertTrue(db.create(self.con))
        self.assertEqual(self.con.execute("SELECT COUNT(*) FROM Skill").fetchone()[0], 2)

    def test_create_fills_default_seed_rows(self) -> None:
        self.assertTrue(self.Database().create(self.con))
        self.assertEqual(self.con.execute("SELECT COUNT(*) FROM Motivation").fetchone()[0], 5)

    def test_failing_insert_only_source_rolls_back(self) -> None:
        bad_seed = "INSERT INTO Missing (id) VALUES (1);\n"
        db = self.Database(io.StringIO(TABLES), io.StringIO(bad_seed))
        self.assertFalse(db.create(self.con, log=lambda m: None))
        self.assertEqual(relations(self.con), [])

    def test_create_can_be_repeated(self) -> None:
        db = self.Database(io.StringIO(TABLES + SEED), io.StringIO(VIEWS))
        self.assertTrue(db.create(self.con))
        self.con.execute("INSERT INTO Person (id, name) VALUES (1, 'Leto')")
        self.assertTrue(db.create(self.con))
        self.assertEqual(self.con.execute("SELECT COUNT(*) FROM Person").fetchone()[0], 0)
        self.assertEqual(self.con.execute("SELECT COUNT(*) FROM Skill").fetchone()[0], 2)

    def test_failing_source_rolls_back_everything(self) -> None:
        messages: list[str] = []
        db = self.Database(io.StringIO(TABLES), io.StringIO(BROKEN))
        self.assertFalse(db.create(self.con, log=messages.append))
        self.assertEqual(relations(self.con), [])
        self.assertTrue(any("Creation failed" in m for m in messages))

    def test_failing_create_keeps_previous_schema(self) -> None:
        self.assertTrue(self.Database(io.StringIO(TABLES + SEED)).create(self.con))
        broken = self.Database(io.StringIO(TABLES + SEED), io.StringIO(BROKEN))
        self.assertFalse(broken.create(self.con))
        # The reset drop was part of the rolled back transaction.
        self.assertEqual(self.con.execute("SELECT COUNT(*) FROM Skill").fetchone()[0], 2)

    def test_create_reports_progress_per_source(self) -> None:
        ticks: list[int] = []
        db = self.Database(io.StringIO(TABLES), io.StringIO(VIEWS), io.StringIO(""))
        self.assertTrue(db.create(self.con, progress_cb=lambda: ticks.append(1)))
        self.assertEqual(len(ticks), 3)

    def test_create_without_create_blocks_reports_false(self) -> None:
        db = self.Database(io.StringIO("-- nothing here\n"))
        self.assertFalse(db.create(self.con))

    def test_drop_removes_tables_then_views(self) -> None:
        db = self.Database(io.StringIO(TABLES), io.StringIO(VIEWS))
        self.assertTrue(db.create(self.con))
        messages: list[str] = []
        self.assertTrue(db.drop(self.con, log=messages.append))
        self.assertEqual(relations(self.con), [])
        table_line = next(i for i, m in enumerate(messages) if m.startswith("\nDROPPING TABLES"))
        view_line = next(i for i, m in enumerate(messages) if m.startswith("\nDROPPING VIEWS"))
        self.assertLess(table_line, view_line)
        self.assertIn("Dropping table Person: DROP TABLE IF EXISTS Person", messages)
        self.assertIn("Dropping view PersonNames: DROP VIEW IF EXISTS PersonNames", messages)

    def test_drop_on_empty_store_succeeds(self) -> None:
        db = self.Database(io.StringIO(TABLES), io.StringIO(VIEWS))
        self.assertTrue(db.drop(self.con))

    def test_closed_connection_fails_and_logs_rollback_failure(self) -> None:
        messages: list[str] = []
        db = self.Database(io.StringIO(TABLES))
        self.con.close()
        self.assertFalse(db.create(self.con, log=messages.append))
        self.assertFalse(db.drop(self.con, log=messages.append))
        self.assertTrue(any(m.startswith("Rollback failed") for m in messages))


class TestSingleSourceReplay(unittest.TestCase):
    def setUp(self) -> None:
        self.Database = load_module("schema_database").Database
        self.con = duckdb.connect()

    def tearDown(self) -> None:
        self.con.close()

    def test_create_source_runs_create_then_populate(self) -> None:
        db = self.Database(io.StringIO(TABLES + SEED))
        self.assertTrue(db.create_source(0, self.con))
        self.assertEqual(self.con.execute("SELECT COUNT(*) FROM Skill").fetchone()[0], 2)

    def test_create_source_ignores_populate_result(self) -> None:
        # Known gap: a source whose populate step reports False still counts as created.
        db = self.Database(io.StringIO(TABLES))
        self.assertFalse(db.populate(0, self.con))
        self.assertTrue(db.create_source(0, self.con))

    def test_create_source_out_of_range_or_absent(self) -> None:
        db = self.Database(io.StringIO(SEED))
        self.assertFalse(db.create_source(0, self.con))
        self.assertFalse(db.create_source(3, self.con))
        self.assertFalse(db.populate(3, self.con))

    def test_populate_errors_propagate(self) -> None:
        db = self.Database(io.StringIO(SEED))
        with self.assertRaises(duckdb.Error):
            db.populate(0, self.con)


class TestPhaseOperations(unittest.TestCase):
    def setUp(self) -> None:
        self.Database = load_module("schema_database").Database
        self.con = duckdb.connect()

    def tearDown(self) -> None:
        self.con.close()

    def test_tables_views_and_population_in_phases(self) -> None:
        db = self.Database(io.StringIO(VIEWS + SEED), io.StringIO(TABLES))
        self.assertTrue(db.create_tables(self.con))
        self.assertEqual([name for name, _ in relations(self.con)], ["Person", "Skill"])
        self.assertTrue(db.create_views(self.con))
        self.assertTrue(db.populate_tables(self.con))
        self.assertEqual(self.con.execute("SELECT COUNT(*) FROM Skill").fetchone()[0], 2)

    def test_populate_outcomes_collect_failures(self) -> None:
        other_seed = "INSERT INTO Missing (id) VALUES (1);\n"
        db = self.Database(io.StringIO(TABLES + SEED), io.StringIO(other_seed))
        db.create_tables(self.con)
        outcomes = db.populate_outcomes(self.con)
        self.assertEqual([(o.source_index, o.table, o.ok) for o in outcomes], [(0, "Skill", True), (1, "Missing", False)])
        self.assertIsInstance(outcomes[1].error, duckdb.Error)

    def test_populate_tables_is_false_when_nothing_succeeds(self) -> None:
        db = self.Database(io.StringIO(SEED))
        self.assertFalse(db.populate_tables(self.con))


class TestBatchConversion(unittest.TestCase):
    def setUp(self) -> None:
        self.schema_database = load_module("schema_database")
        self.create_database = load_module("create_database")

    def test_default_definitions_convert_to_command_lists(self) -> None:
        creator = self.schema_database.Database().to_create_database()
        self.assertEqual(len(creator.tables), 3)
        self.assertEqual(len(creator.views), 1)
        self.assertEqual(len(creator.table_initializations), 1)
        self.assertTrue(creator.tables[0].startswith("CREATE TABLE IF NOT EXISTS Person ("))

    def test_quoted_semicolon_in_a_default_converts(self) -> None:
        text = "CREATE TABLE Note (\n body VARCHAR DEFAULT 'a;b'\n);\n"
        creator = self.schema_database.Database(io.StringIO(text)).to_create_database()
        self.assertEqual(creator.tables, [text])

    def test_unrecognised_statement_inside_a_chunk_is_rejected(self) -> None:
        text = "CREATE TABLE A (\n i int\n);\nCREATE INDEX a_i ON A (i);\n"
        db = self.schema_database.Database(io.StringIO(text))
        with self.assertRaises(self.create_database.InvalidCommandError):
            db.to_create_database()


if __name__ == "__main__":
    unittest.main()
