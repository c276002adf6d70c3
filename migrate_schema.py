#!/usr/bin/env python3
"""
Bring a back-office database up to date and print what changed.

Runs the same idempotent statements as the automatic migration in db.py,
but reports missing tables and columns first so an operator can see the
drift. Usage: python migrate_schema.py
"""

import sys
import traceback

import psycopg2

import config
from schema import TABLES, seed_lead_types, table_statements


def check_table_exists(cursor, table_name):
    cursor.execute(
        "SELECT EXISTS (SELECT 1 FROM information_schema.tables WHERE table_name = %s);",
        (table_name,)
    )
    return cursor.fetchone()[0]


def check_column_exists(cursor, table_name, column_name):
    cursor.execute(
        "SELECT EXISTS (SELECT 1 FROM information_schema.columns "
        "WHERE table_name = %s AND column_name = %s);",
        (table_name, column_name)
    )
    return cursor.fetchone()[0]


def migrate_table(cursor, table):
    """Run one table's statements, returning a description of each change."""
    changes = []
    name = table['name']
    print(f"\n{name.upper()}")

    if not check_table_exists(cursor, name):
        print("  ❌ Missing, creating")
        changes.append(f"Created {name}")
        missing = []
    else:
        missing = [
            column for column, _ in table['columns']
            if not check_column_exists(cursor, name, column)
        ]
        for column in missing:
            print(f"  ❌ Adding column {column}")
            changes.append(f"Added {name}.{column}")
        if not missing:
            print("  ✅ Up to date")

    for statement in table_statements(table):
        cursor.execute(statement)
    return changes


def main():
    print("\n" + "=" * 70)
    print("TRAVEL BACK-OFFICE SCHEMA MIGRATION")
    print("=" * 70)
    target = 'DATABASE_URL' if config.DATABASE_URL else \
        f"{config.DB_CONFIG['database']}@{config.DB_CONFIG['host']}"
    print(f"\nDatabase: {target}")

    conn = None
    try:
        if config.DATABASE_URL:
            conn = psycopg2.connect(config.DATABASE_URL)
        else:
            conn = psycopg2.connect(**config.DB_CONFIG)
        print("\n✅ Connected to database")

        cursor = conn.cursor()
        all_changes = []
        for table in TABLES:
            all_changes.extend(migrate_table(cursor, table))

        seeded = seed_lead_types(cursor)
        if seeded:
            all_changes.append(f"Seeded {seeded} default lead types")
        cursor.close()

        conn.commit()
        if all_changes:
            print("\nChanges Made:")
            for i, change in enumerate(all_changes, 1):
                print(f"  {i:2d}. {change}")
        else:
            print("\n✅ No changes needed - schema already up to date")

        print("\n" + "=" * 70)
        print("✅ MIGRATION COMPLETED SUCCESSFULLY")
        print("=" * 70)
        return 0

    except Exception as e:
        if conn is not None:
            conn.rollback()
        print(f"\n❌ Error: {e}")
        traceback.print_exc()
        return 1
    finally:
        if conn is not None:
            conn.close()


if __name__ == '__main__':
    sys.exit(main())
