from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from roster_doctor import __version__ as TOOL_VERSION
from roster_doctor.config import DEFAULT_CONFIG_NAME, EXPORT_FORMATS, AppConfig, load_config, render_default_config
from roster_doctor.contracts import build_contract, build_run_summary, timestamp_token
from roster_doctor.exporter import ExportBlockedError, write_export
from roster_doctor.issue_taxonomy import FINDING_DEFINITIONS, explain
from roster_doctor.loader import LoadResult, load_entities
from roster_doctor.models import ENTITY_TYPES
from roster_doctor.rule_suggestions import suggest_rules
from roster_doctor.rules import PrioritySettings, rules_from_document
from roster_doctor.search import extract_criteria, search
from roster_doctor.store import DataStore

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_VALIDATE_WARNINGS = 3
EXIT_VALIDATE_FAILED = 5

LOG_FORMAT = "[%(levelname)s] %(message)s"


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class RosterDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def configure_logging(quiet: bool = False, verbose: bool = False) -> None:
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    root = logging.getLogger("roster_doctor")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    for handler in root.handlers:
        handler.setLevel(level)


def non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be 0 or more, got {number}")
    return number


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json_dumps(payload), encoding="utf-8")


def default_output_dir() -> Path:
    return Path.cwd() / "roster-doctor-output" / f"export-{timestamp_token()}"


def remove_generated_at(value: Any) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key == "generated_at":
                result[key] = "1970-01-01T00:00:00Z"
            else:
                result[key] = remove_generated_at(item)
        return result
    if isinstance(value, list):
        return [remove_generated_at(item) for item in value]
    return value


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, ExportBlockedError):
        return EXIT_VALIDATE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError, ValueError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


# ══════════════════════════════════════════════════════════════════════════════
# SHARED LOADING
# ══════════════════════════════════════════════════════════════════════════════

def read_config(args: argparse.Namespace) -> AppConfig:
    path = getattr(args, "config", None)
    try:
        return load_config(Path(path) if path else None)
    except (FileNotFoundError, ValueError) as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc


def build_store(paths: list[str], config: AppConfig) -> tuple[DataStore, list[LoadResult]]:
    """Load every input and merge it into one store; first record per id wins."""
    store = DataStore(
        policy=config.validation,
        priorities=PrioritySettings.from_dict(config.priorities),
    )
    loaded: list[LoadResult] = []
    for raw_path in paths:
        logger.debug("Loading %s", raw_path)
        for result in load_entities(Path(raw_path)):
            _, skipped = store.merge_entities(result.entity, result.records)
            if skipped:
                result.warnings.append(f"Skipped {skipped} {result.entity} already loaded under the same id")
            loaded.append(result)
    return store, loaded


def load_summary(results: list[LoadResult]) -> list[dict[str, Any]]:
    return [
        {
            "file": result.source,
            "sheet_name": result.sheet_name,
            "entity": result.entity,
            "records": len(result.records),
            "unmapped_columns": result.unmapped_columns,
            "warnings": result.warnings,
        }
        for result in results
    ]


# ══════════════════════════════════════════════════════════════════════════════
# RENDERING
# ══════════════════════════════════════════════════════════════════════════════

def render_validate_text(payload: dict[str, Any]) -> str:
    summary = payload["summary"]
    counts = payload["record_counts"]
    lines = [
        "roster-doctor validate",
        f"Inputs: {', '.join(payload['inputs'])}",
        f"Records: {counts['clients']} clients, {counts['workers']} workers, {counts['tasks']} tasks",
        f"Status: {summary['status']}",
        f"Errors: {summary['error_count']}",
        f"Warnings: {summary['warning_count']}",
    ]
    for finding in payload["findings"]:
        field = f" [{finding['field']}]" if finding.get("field") else ""
        lines.append(f"- {finding['type']} {finding['id']}: {finding['entity']}/{finding['rowId']}{field} {finding['message']}")
    for item in payload["loaded"]:
        for warning in item["warnings"]:
            lines.append(f"Warning ({item['file']}): {warning}")
    return "\n".join(lines) + "\n"


def render_search_text(payload: dict[str, Any]) -> str:
    lines = [f"roster-doctor search: {payload['query']}", f"Results: {len(payload['results'])}"]
    for result in payload["results"]:
        match = f"  {result['match']}" if result["match"] else ""
        lines.append(f"{result['score']:>4}  {result['entity']}/{result['id']}{match}")
    return "\n".join(lines) + "\n"


def render_suggest_text(payload: dict[str, Any]) -> str:
    suggestions = payload["suggestions"]
    if not suggestions:
        return "No rule suggestions found.\n"
    lines = []
    for suggestion in suggestions:
        lines.extend(
            [
                f"{suggestion['title']} ({suggestion['type']}, confidence {suggestion['confidence']})",
                f"  {suggestion['description']}",
                f"  Parameters: {json.dumps(suggestion['parameters'], sort_keys=True)}",
                f"  Why: {suggestion['reasoning']}",
            ]
        )
    return "\n".join(lines) + "\n"


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def run_validate(args: argparse.Namespace) -> int:
    config = read_config(args)
    try:
        store, loaded = build_store(args.inputs, config)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)

    snapshot = store.snapshot
    summary = snapshot.summary
    payload = {
        "contract": build_contract("roster_doctor.validate"),
        "tool": "roster-doctor",
        "command": "validate",
        "version": TOOL_VERSION,
        "inputs": [str(path) for path in args.inputs],
        "loaded": load_summary(loaded),
        "record_counts": {entity: len(snapshot.records(entity)) for entity in ENTITY_TYPES},
        "summary": summary,
        "findings": [finding.to_dict() for finding in snapshot.findings],
    }
    if args.output:
        write_json(Path(args.output), payload)
        emit_human(f"Validation report: {args.output}", quiet=args.quiet)
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(render_validate_text(payload).rstrip(), quiet=args.quiet)

    if summary["error_count"]:
        return EXIT_VALIDATE_FAILED
    if summary["warning_count"]:
        return EXIT_VALIDATE_WARNINGS
    return EXIT_SUCCESS


def run_search(args: argparse.Namespace) -> int:
    config = read_config(args)
    try:
        store, _ = build_store(args.inputs, config)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)

    snapshot = store.snapshot
    results = search(args.query, snapshot.clients, snapshot.workers, snapshot.tasks)
    if args.limit is not None:
        results = results[: args.limit]
    payload = {
        "contract": build_contract("roster_doctor.search"),
        "query": args.query,
        "criteria": extract_criteria(args.query).to_dict(),
        "results": [result.to_dict() for result in results],
    }
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(render_search_text(payload).rstrip())
    return EXIT_SUCCESS


def run_suggest(args: argparse.Namespace) -> int:
    suggestions = suggest_rules(args.text)
    payload = {
        "contract": build_contract("roster_doctor.suggest"),
        "text": args.text,
        "suggestions": [suggestion.to_dict() for suggestion in suggestions],
    }
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(render_suggest_text(payload).rstrip())
    return EXIT_SUCCESS


def read_rules_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise CliError(f"Rules file not found: {path}", EXIT_COMMAND_ERROR)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise CliError(f"Could not read rules file: {exc}", EXIT_COMMAND_ERROR) from exc


def run_export(args: argparse.Namespace) -> int:
    config = read_config(args)
    formats = {args.format or config.export_format, "json"}
    try:
        store, loaded = build_store(args.inputs, config)
        if args.rules:
            rules, priorities = rules_from_document(read_rules_file(Path(args.rules)))
            for rule in rules:
                store.add_rule(rule)
            store.set_priorities(priorities)
        for text in args.rule_text or []:
            for suggestion in store.request_suggestions(text):
                store.accept_suggestion(suggestion.id)

        out_dir = Path(args.out_dir) if args.out_dir else default_output_dir()
        written = write_export(store.snapshot, out_dir, formats=sorted(formats))
    except ExportBlockedError as exc:
        eprint(str(exc))
        for finding in exc.findings:
            eprint(f"- {finding.entity}/{finding.row_id}: {finding.message}")
        return EXIT_VALIDATE_FAILED
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)

    snapshot = store.snapshot
    summary = build_run_summary(
        command="export",
        input_paths=[Path(path) for path in args.inputs],
        status="ok",
        output_paths=written,
        metrics={
            "records": snapshot.total_records,
            "rules": len(snapshot.rules),
            "warnings": snapshot.summary["warning_count"],
        },
        warnings=[warning for result in loaded for warning in result.warnings],
    )
    payload = {"contract": build_contract("roster_doctor.export_summary"), **remove_generated_at(summary)}
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(f"Exported {snapshot.total_records} records and {len(snapshot.rules)} rules", quiet=args.quiet)
        for path in written:
            emit_human(f"- {path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(render_default_config(), encoding="utf-8")
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_explain(args: argparse.Namespace) -> int:
    payload = explain(args.kind)
    if payload is None:
        eprint(f"Unknown finding kind: {args.kind}")
        eprint(f"Known kinds: {', '.join(sorted(FINDING_DEFINITIONS))}")
        return EXIT_COMMAND_ERROR
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Finding: {args.kind}",
                    f"Severity: {payload['severity']}",
                    f"What it means: {payload['description']}",
                    f"What triggers it: {payload['evidence']}",
                    f"Blocks export: {'yes' if payload['blocks_export'] else 'no'}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help=f"JSON config path (see `config init`, default name {DEFAULT_CONFIG_NAME})")
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="More human logs")


def build_parser() -> argparse.ArgumentParser:
    parser = RosterDoctorArgumentParser(
        prog="roster-doctor",
        description="Validate client, worker and task sheets and derive scheduling rules.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Validate one or more entity files.")
    validate.add_argument("inputs", nargs="+", help="Client, worker or task files (.csv .tsv .xlsx .xls .json)")
    validate.add_argument("--output", help="Also write the JSON report to this path")
    add_common_flags(validate)

    search_parser = subparsers.add_parser("search", help="Search loaded records with a plain-language query.")
    search_parser.add_argument("query", help="Query text, e.g. 'tasks with duration more than 2'")
    search_parser.add_argument("-i", "--input", dest="inputs", action="append", required=True, help="Entity file (repeatable)")
    search_parser.add_argument("--limit", type=non_negative_int, help="Maximum number of results")
    add_common_flags(search_parser)

    suggest = subparsers.add_parser("suggest", help="Derive rule suggestions from a plain-language sentence.")
    suggest.add_argument("text", help="Rule description, e.g. 'T1 and T2 must run together'")
    suggest.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    export = subparsers.add_parser("export", help="Export cleaned data and rules (blocked on validation errors).")
    export.add_argument("inputs", nargs="+", help="Client, worker or task files")
    export.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    export.add_argument("--format", choices=list(EXPORT_FORMATS), help="Extra flat output next to the JSON documents")
    export.add_argument("--rules", help="rules.json or rules-config JSON to include")
    export.add_argument("--rule", dest="rule_text", action="append", help="Plain-language rule; every suggestion is accepted (repeatable)")
    add_common_flags(export)

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default=DEFAULT_CONFIG_NAME, help="Config output path")

    explain_parser = subparsers.add_parser("explain", help="Explain a finding kind.")
    explain_parser.add_argument("kind", help="Finding kind, e.g. duplicate_id")
    explain_parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(getattr(args, "quiet", False), getattr(args, "verbose", False))
        if args.command == "validate":
            return run_validate(args)
        if args.command == "search":
            return run_search(args)
        if args.command == "suggest":
            return run_suggest(args)
        if args.command == "export":
            return run_export(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
