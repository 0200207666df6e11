"""Command line interface for importing, validating, and exporting leads."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from concurrent.futures import TimeoutError as FuturesTimeoutError
from pathlib import Path
from typing import Dict, List, Optional

from .config import ConfigurationError, Settings, load_settings
from .ingestion.exporters import EXPORT_FORMATS
from .ingestion.templates import TEMPLATE_FORMATS, build_template
from .models import JOB_COMPLETED, ImportOptions, UploadedFile, parse_field_mapping
from .orchestrator import ImportOrchestrator, ImportRequestError
from .store import InMemoryLeadStore, JsonFileLeadStore, LeadStore

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to a service configuration file (YAML or JSON)",
    )
    common.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. DEBUG, INFO, WARNING)",
    )

    storage = argparse.ArgumentParser(add_help=False)
    storage.add_argument("--store", default=None, help="Path to a JSON file used as the lead store")
    storage.add_argument("--mongo-uri", default=None, help="MongoDB connection URI used as the lead store")
    storage.add_argument("--mongo-database", default="leads", help="MongoDB database name")
    storage.add_argument("--mongo-collection", default="leads", help="MongoDB collection name")

    parser = argparse.ArgumentParser(prog=prog, description="Bulk import and export real-estate leads")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser(
        "import", parents=[common, storage], help="Import leads from a CSV or Excel file"
    )
    import_parser.add_argument("file", help="Path to the CSV, XLSX, or XLS file")
    import_parser.add_argument("--tenant-id", required=True, help="Tenant that will own the leads")
    import_parser.add_argument("--user-id", required=True, help="User recorded as the creator")
    import_parser.add_argument("--batch-size", type=int, default=None, help="Rows per bulk write")
    import_parser.add_argument(
        "--update-existing",
        action="store_true",
        help="Update leads that match an existing phone or email",
    )
    import_parser.add_argument(
        "--no-skip-duplicates",
        action="store_true",
        help="Insert rows even when a matching lead already exists",
    )
    import_parser.add_argument("--default-source", default=None)
    import_parser.add_argument("--default-status", default=None)
    import_parser.add_argument("--default-priority", default=None)
    import_parser.add_argument(
        "--default-tag",
        action="append",
        default=[],
        dest="default_tags",
        help="Tag added to every imported lead (repeatable)",
    )
    import_parser.add_argument("--field-mapping", default=None, help="JSON list of sourceColumn/targetField pairs")
    import_parser.add_argument("--report", default=None, help="Write the final job report to this JSON file")
    import_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Maximum seconds to wait for the import to finish",
    )

    validate_parser = subparsers.add_parser(
        "validate", parents=[common], help="Validate a file without importing it"
    )
    validate_parser.add_argument("file", help="Path to the CSV, XLSX, or XLS file")
    validate_parser.add_argument("--field-mapping", default=None, help="JSON list of sourceColumn/targetField pairs")
    validate_parser.add_argument("--sample-size", type=int, default=None, help="Number of sample rows to print")

    template_parser = subparsers.add_parser(
        "template", parents=[common], help="Write an import template with example rows"
    )
    template_parser.add_argument("output", help="Where to write the template")
    template_parser.add_argument(
        "--format",
        choices=sorted(TEMPLATE_FORMATS),
        default=None,
        help="Template format (defaults to the output file extension, then csv)",
    )

    export_parser = subparsers.add_parser(
        "export", parents=[common, storage], help="Export a tenant's leads to a file"
    )
    export_parser.add_argument("output", help="Where to write the export")
    export_parser.add_argument("--tenant-id", required=True, help="Tenant whose leads are exported")
    export_parser.add_argument(
        "--format",
        choices=sorted(EXPORT_FORMATS),
        default=None,
        help="Export format (defaults to the output file extension, then csv)",
    )
    export_parser.add_argument(
        "--filter",
        action="append",
        default=[],
        dest="filters",
        metavar="FIELD=VALUE",
        help="Only export leads whose field equals the value (repeatable)",
    )
    export_parser.add_argument("--field", action="append", default=None, dest="fields", help="Column to export")

    serve_parser = subparsers.add_parser("serve", parents=[common, storage], help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def build_store(args: argparse.Namespace) -> LeadStore:
    """Pick the lead store named on the command line."""

    if getattr(args, "mongo_uri", None):
        from .mongo_store import MongoLeadStore

        LOGGER.info("Using MongoDB store %s/%s", args.mongo_database, args.mongo_collection)
        return MongoLeadStore.from_uri(args.mongo_uri, args.mongo_database, args.mongo_collection)
    if getattr(args, "store", None):
        LOGGER.info("Using JSON file store %s", Path(args.store).resolve())
        return JsonFileLeadStore(args.store)
    LOGGER.warning("No --store or --mongo-uri given; leads are kept in memory only")
    return InMemoryLeadStore()


def read_upload(path: str | Path) -> UploadedFile:
    file_path = Path(path)
    if not file_path.is_file():
        raise ImportRequestError(f"File '{file_path}' was not found")
    return UploadedFile(content=file_path.read_bytes(), filename=file_path.name)


def _format_from(output: str, explicit: Optional[str], choices) -> str:
    if explicit:
        return explicit
    suffix = Path(output).suffix.lower().lstrip(".")
    return suffix if suffix in choices else "csv"


def _parse_filters(pairs: List[str]) -> Dict[str, str]:
    filters: Dict[str, str] = {}
    for pair in pairs:
        key, separator, value = pair.partition("=")
        if not separator or not key.strip():
            raise ImportRequestError(f"Filters must look like FIELD=VALUE, got '{pair}'")
        filters[key.strip()] = value.strip()
    return filters


def _write_json(path: str | Path, payload: object) -> Path:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return destination


def run_import(args: argparse.Namespace, settings: Settings) -> int:
    options = ImportOptions.from_form(
        update_existing=args.update_existing,
        skip_duplicates=not args.no_skip_duplicates,
        batch_size=args.batch_size,
        default_source=args.default_source,
        default_status=args.default_status,
        default_priority=args.default_priority,
        default_tags=args.default_tags,
        field_mapping=args.field_mapping,
        default_batch_size=settings.default_batch_size,
    )
    upload = read_upload(args.file)
    orchestrator = ImportOrchestrator(build_store(args), settings=settings)
    finished = False
    try:
        job = orchestrator.start_import(upload, options, args.tenant_id, args.user_id)
        try:
            orchestrator.wait(job.import_id, timeout=args.timeout)
            finished = True
        except FuturesTimeoutError:
            logging.error("Import %s still running after %g seconds", job.import_id, args.timeout)
        final = orchestrator.get_progress(job.import_id)
    finally:
        orchestrator.shutdown(wait=finished)

    report = final.as_dict() if final is not None else job.as_dict()
    print(json.dumps(report, indent=2))
    if args.report:
        destination = _write_json(args.report, report)
        logging.info("Import report written to %s", destination.resolve())
    if not finished:
        return EXIT_FAILED
    return EXIT_OK if report["status"] == JOB_COMPLETED else EXIT_FAILED


def run_validate(args: argparse.Namespace, settings: Settings) -> int:
    upload = read_upload(args.file)
    with ImportOrchestrator(InMemoryLeadStore(), settings=settings) as orchestrator:
        preview = orchestrator.validate_file(upload, parse_field_mapping(args.field_mapping), args.sample_size)
    print(json.dumps(preview, indent=2, default=str))
    return EXIT_OK if preview["validation"]["isValid"] else EXIT_FAILED


def run_template(args: argparse.Namespace, settings: Settings) -> int:
    template_format = _format_from(args.output, args.format, TEMPLATE_FORMATS)
    destination = Path(args.output)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(build_template(template_format))
    logging.info("Template written to %s", destination.resolve())
    return EXIT_OK


def run_export(args: argparse.Namespace, settings: Settings) -> int:
    export_format = _format_from(args.output, args.format, EXPORT_FORMATS)
    filters = _parse_filters(args.filters)
    with ImportOrchestrator(build_store(args), settings=settings) as orchestrator:
        job = orchestrator.start_export(args.tenant_id, export_format, filters=filters, fields=args.fields)
        final = orchestrator.wait(job.export_id)
        content = orchestrator.get_export_file(job.export_id)

    if content is None:
        errors = final.errors if final is not None else []
        logging.error("Export failed: %s", "; ".join(errors) or "unknown error")
        return EXIT_FAILED

    destination = Path(args.output)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(content)
    logging.info("Exported %s leads to %s", final.record_count, destination.resolve())
    return EXIT_OK


def run_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    from .api import create_app

    orchestrator = ImportOrchestrator(build_store(args), settings=settings)
    try:
        uvicorn.run(create_app(orchestrator), host=args.host, port=args.port)
    finally:
        orchestrator.shutdown()
    return EXIT_OK


COMMANDS = {
    "import": run_import,
    "validate": run_validate,
    "template": run_template,
    "export": run_export,
    "serve": run_serve,
}


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        settings = load_settings(args.config)
        return COMMANDS[args.command](args, settings)
    except (ConfigurationError, ValueError) as exc:
        # ImportRequestError is a ValueError, as are malformed form options.
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
