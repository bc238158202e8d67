import argparse
import sys
from pathlib import Path

from app.database import SessionLocal
from app.services.audit_logger import AuditLogger
from app.services.change_feed import get_change_feed
from app.services.remote_store import RemoteStore
from app.services.schema_registry import get_schema_registry
from app.services.table_orchestrator import TableOrchestrator


def import_file(table_name: str, path: Path, performed_by: str) -> int:
    registry = get_schema_registry()
    with SessionLocal() as session:
        store = RemoteStore(session, change_feed=get_change_feed())
        orchestrator = TableOrchestrator(
            registry,
            table_name,
            store=store,
            audit_logger=AuditLogger(store.append_audit),
            user=performed_by,
        )
        result = orchestrator.bulk_import(path.read_bytes())

    if not result.success:
        print(f"Import failed: {result.message}", file=sys.stderr)
        for violation in result.violations:
            print(f"  {violation.field}: {violation.message}", file=sys.stderr)
        return 1

    print(result.message)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Import a CSV file into a console table.")
    parser.add_argument("table", help="Table name, e.g. rating_factors")
    parser.add_argument("path", type=Path, help="CSV file with a header row")
    parser.add_argument(
        "--performed-by",
        required=True,
        help="Email recorded as the author of the import in the audit log",
    )

    args = parser.parse_args()
    raise SystemExit(import_file(args.table, args.path, args.performed_by))


if __name__ == "__main__":
    main()
