from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from lead_import.config.loader import ConfigError, ImportConfig, default_config, load_config
from lead_import.db.postgres import PostgresLeadRepository
from lead_import.db.repository import InMemoryLeadRepository, LeadRepository, RepositoryError
from lead_import.logging.error_log import ErrorLogBuffer
from lead_import.logging.init import log_summary, set_debug, setup_logging
from lead_import.models import ImportReport, ValidationResult
from lead_import.services.column_mapper import MappingError
from lead_import.services.existing_cache import ExistingRecordsCache
from lead_import.services.pipeline import PipelineController
from lead_import.services.summary import render_summary_line
from lead_import.tabular.reader import ParsedFile, ParseError, format_from_filename

"""Command-line caller for the lead import pipeline.

Flow: load .env -> load config -> upload file -> apply --map overrides -> validate
-> import -> SUMMARY line. With DATABASE_URL set the rows go to PostgreSQL;
otherwise the run is a dry run against an in-memory repository.

Exit codes: 0 every row imported, 2 partial (rows skipped, failed or cancelled),
1 fatal (config, file or mapping error).
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2

CONFIG_ENV = "LEAD_IMPORT_CONFIG"


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; DATABASE_URL from .env wins over the shell."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="lead-import", description="Spreadsheet -> lead repository importer")
    p.add_argument("file", type=Path, help="xlsx / xls / csv file to import")
    p.add_argument("--format", dest="format_hint", choices=["xlsx", "xls", "csv"], help="Override format detection")
    p.add_argument("--config", type=Path, help=f"Import config YAML (default: ${CONFIG_ENV} or packaged defaults)")
    p.add_argument(
        "--map",
        dest="overrides",
        action="append",
        default=[],
        metavar="COLUMN=FIELD",
        help="Manual mapping override; empty FIELD ignores the column (repeatable)",
    )
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print headers, suggested mapping & first rows then exit")
    p.add_argument("--report-json", type=Path, metavar="PATH", help="Write the import report (per-row outcomes) as JSON")
    return p.parse_args(argv)


def _resolve_config(args: argparse.Namespace) -> ImportConfig:
    path = args.config or (Path(os.environ[CONFIG_ENV]) if os.getenv(CONFIG_ENV) else None)
    return load_config(path) if path is not None else default_config()


def _parse_override(text: str) -> tuple[str, str | None]:
    if "=" not in text:
        raise MappingError("unknown-column", f"override must be COLUMN=FIELD: {text!r}")
    column, field_key = text.split("=", 1)
    return column.strip(), (field_key.strip() or None)


def _open_repository(logger) -> tuple[LeadRepository, str]:
    dsn = os.getenv("DATABASE_URL")
    if not dsn:
        return InMemoryLeadRepository(), "dry-run"
    try:
        return PostgresLeadRepository.connect(dsn), "live"
    except RepositoryError as e:
        logger.info(f"DB connection failed -> fallback to dry-run: {e}")
        return InMemoryLeadRepository(), "dry-run"


def _inspect_data(controller: PipelineController, parsed: ParsedFile) -> int:
    print(f"headers={list(parsed.headers)}")
    print(f"suggested_mapping={dict(controller.mapping or {})}")
    if controller.mapper is not None:
        print(f"required_mapped={controller.mapper.can_commit()}")
    for row in parsed.rows[:3]:
        print(f"  line {row.row_number}: {dict(row.values)}")
    return EXIT_SUCCESS_ALL


def _log_findings(logger, result: ValidationResult, total_rows: int) -> None:
    """One INFO line for the skip count, one DEBUG line per flagged row."""
    flagged = sorted(result.flagged_rows)
    logger.info(f"validation: {len(flagged)} of {total_rows} rows will be skipped")
    for row_number in flagged:
        reasons = [f"{e.field_key}: {e.message}" for e in result.errors_for(row_number)]
        reasons += [
            f"duplicate {f.matched_field.value} ({f.matched_against.value})"
            for f in result.flags_for(row_number)
        ]
        logger.debug(f"  line {row_number}: {'; '.join(reasons)}")


def _write_report_json(path: Path, report: ImportReport) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときだけ sys.argv を読む (テストで [] を渡すケースを区別)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    try:
        cfg = _resolve_config(args)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    path: Path = args.file
    if not path.exists():
        logger.error(f"file not found: {path}")
        return EXIT_FATAL

    repository, mode = _open_repository(logger)
    error_log = ErrorLogBuffer(cfg.error_log_dir)
    controller = PipelineController(
        cfg.catalog,
        repository,
        existing_cache=ExistingRecordsCache(cfg.existing_cache_ttl_seconds),
        error_log=error_log,
        show_progress=True,
    )
    try:
        try:
            fmt = args.format_hint or format_from_filename(path)
            parsed = controller.upload(path.read_bytes(), fmt, file_name=path.name)
        except ParseError as e:
            logger.error(f"file: {e}")
            return EXIT_FATAL

        if args.inspect_data:
            return _inspect_data(controller, parsed)

        try:
            for override in args.overrides:
                controller.map_column(*_parse_override(override))
            result = controller.validate()
        except MappingError as e:
            logger.error(f"mapping: {e}")
            return EXIT_FATAL

        _log_findings(logger, result, parsed.row_count)
        logger.info(f"mode={mode} mapping={dict(controller.committed_mapping or {})}")
        report = controller.run_import()
    finally:
        if isinstance(repository, PostgresLeadRepository):
            repository.close()

    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"error log written: {log_path}")
    for warning in report.warnings:
        logger.warning(warning)
    if args.report_json is not None:
        _write_report_json(args.report_json, report)
        logger.info(f"report written: {args.report_json}")

    # log_summary が "SUMMARY " を付けるので先頭ラベルを除く
    log_summary(render_summary_line(report)[len("SUMMARY "):])

    return EXIT_SUCCESS_ALL if report.fully_imported else EXIT_PARTIAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
