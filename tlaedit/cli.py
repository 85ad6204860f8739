import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tlaedit.catalog import Catalog
from tlaedit.config import DEFAULT_CONFIG, EngineConfig
from tlaedit.edits import AddVariable, EditRequest, SplitAction, apply_edits
from tlaedit.errors import TlaSyntaxError
from tlaedit.parser import parse
from tlaedit.render import render
from tlaedit.report import error_json, format_error, format_report, report_json
from tlaedit.result import Err, Ok
from tlaedit.serialization import loads
from tlaedit.validate import validate

logger = logging.getLogger("tlaedit")


@dataclass(frozen=True)
class FileResult:
    """Outcome of running an edit script over one file."""

    file_path: str
    success: bool
    text: str | None
    report: str
    report_data: dict[str, Any]


def _module_name(path: str) -> str:
    return Path(path).stem


def write_text_atomic(path: str, text: str) -> None:
    """Write ``text`` to ``path`` through a temporary file in the same directory."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp = tempfile.mkstemp(prefix=".tlaedit-", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise


def process_file(
    path: str, requests: Sequence[EditRequest], config: EngineConfig
) -> FileResult:
    """Read, edit and report on one file. Nothing is written here."""
    text = Path(path).read_text(encoding="utf-8")
    try:
        module = parse(text, config)
    except TlaSyntaxError as e:
        logger.warning("%s: %s", path, e)
        return FileResult(
            path, False, None,
            format_error(e, _module_name(path), file_path=path),
            error_json(e, _module_name(path), file_path=path),
        )

    match apply_edits(module, requests, config):
        case Ok(outcomes):
            if not outcomes:
                catalog = Catalog.from_module(module, config)
                result = validate(module, catalog=catalog)
                return FileResult(
                    path, result.ok, text,
                    format_report(result, catalog, file_path=path),
                    report_json(result, catalog, file_path=path),
                )
            last = outcomes[-1]
            result = validate(last.module, catalog=last.catalog)
            return FileResult(
                path, True, render(last.module),
                format_report(result, last.catalog, file_path=path, outcome=last),
                report_json(result, last.catalog, file_path=path, outcome=last),
            )
        case Err(e):
            return FileResult(
                path, False, None,
                format_error(e, module.name, file_path=path),
                error_json(e, module.name, file_path=path),
            )
    raise AssertionError("unreachable")


def _print_report(result: FileResult, *, as_json: bool, stream) -> None:
    if as_json:
        print(json.dumps(result.report_data, indent=2), file=stream)
    else:
        print(result.report, file=stream)


def handle_check(files: Sequence[str], *, as_json: bool, config: EngineConfig) -> int:
    """Validate each file and print a report per file."""
    results = [process_file(path, (), config) for path in files]
    if as_json:
        print(json.dumps([r.report_data for r in results], indent=2))
    else:
        for r in results:
            print(r.report)
    return 0 if all(r.success for r in results) else 1


def handle_edit(
    path: str,
    requests: Sequence[EditRequest],
    *,
    output: str | None,
    in_place: bool,
    as_json: bool,
    config: EngineConfig,
) -> int:
    """Apply ``requests`` to one file and write the result."""
    result = process_file(path, requests, config)
    to_stdout = result.success and not in_place and output is None
    _print_report(result, as_json=as_json, stream=sys.stderr if to_stdout else sys.stdout)
    if not result.success or result.text is None:
        return 1
    if in_place:
        write_text_atomic(path, result.text)
    elif output is not None:
        write_text_atomic(output, result.text)
    else:
        sys.stdout.write(result.text)
    return 0


async def handle_batch(
    files: Sequence[str],
    requests: Sequence[EditRequest],
    *,
    output_dir: str | None,
    in_place: bool,
    as_json: bool,
    config: EngineConfig,
) -> int:
    """Apply one edit script to many files, one worker thread per file."""
    results: list[FileResult] = await asyncio.gather(
        *(asyncio.to_thread(process_file, path, requests, config) for path in files)
    )
    if output_dir is not None:
        Path(output_dir).mkdir(parents=True, exist_ok=True)
    for r in results:
        if not r.success or r.text is None:
            continue
        if in_place:
            write_text_atomic(r.file_path, r.text)
        elif output_dir is not None:
            write_text_atomic(os.path.join(output_dir, os.path.basename(r.file_path)), r.text)

    if as_json:
        print(json.dumps([r.report_data for r in results], indent=2))
    else:
        for r in results:
            print(r.report)
    failed = sum(not r.success for r in results)
    if failed:
        print(f"{failed} of {len(results)} file(s) failed", file=sys.stderr)
    return 1 if failed else 0


def _add_common(parser: argparse.ArgumentParser, *, output_help: str) -> None:
    parser.add_argument("-o", "--output", metavar="PATH", help=output_help)
    parser.add_argument(
        "--in-place",
        action="store_true",
        help="Overwrite the input file(s) instead of writing elsewhere.",
    )


def _config_from_args(args: argparse.Namespace) -> EngineConfig:
    overrides: dict[str, str] = {}
    if args.location_var:
        overrides["location_var"] = args.location_var
    if args.init:
        overrides["init_name"] = args.init
    if args.next:
        overrides["next_name"] = args.next
    if args.state_tuple:
        overrides["state_tuple_name"] = args.state_tuple
    return dataclasses.replace(DEFAULT_CONFIG, **overrides)


def _load_script(path: str) -> list[EditRequest]:
    return loads(Path(path).read_text(encoding="utf-8"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tlaedit",
        description="Structural refactoring for TLA+ state-machine specifications",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=False,
        help="Log each edit decision to stderr.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print machine-readable reports.",
    )
    parser.add_argument("--location-var", help="Control-location variable (default: pc).")
    parser.add_argument("--init", help="Name of the initial predicate (default: Init).")
    parser.add_argument("--next", help="Name of the next-state relation (default: Next).")
    parser.add_argument("--state-tuple", help="Name of the state tuple (default: vars).")
    # the same flags after the sub-command; SUPPRESS keeps a value given before it
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Log each edit decision to stderr.",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Print machine-readable reports.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Command: check
    check_parser = subparsers.add_parser(
        "check",
        parents=[common],
        help="Validate one or more modules and print a report.",
    )
    check_parser.add_argument("files", nargs="+", metavar="FILE", help="Module file(s).")

    # Command: add-variable
    add_parser = subparsers.add_parser(
        "add-variable",
        parents=[common],
        help="Add a state variable to every clause that has to mention it.",
    )
    add_parser.add_argument("file", metavar="FILE")
    add_parser.add_argument("--name", required=True, help="Name of the new variable.")
    add_parser.add_argument("--init", dest="init_expr", required=True, help="Initial value.")
    add_parser.add_argument("--type", dest="type_expr", help="Type (set) for the type invariant.")
    _add_common(add_parser, output_help="Write the edited module here instead of stdout.")

    # Command: split-action
    split_parser = subparsers.add_parser(
        "split-action",
        parents=[common],
        help="Split an action in two at a new control location.",
    )
    split_parser.add_argument("file", metavar="FILE")
    split_parser.add_argument("--action", required=True, help="Action to split.")
    split_parser.add_argument(
        "--first-half",
        default="",
        help="Comma-separated variables whose assignments stay in the first half.",
    )
    split_parser.add_argument("--new-name", help="Name of the new action.")
    split_parser.add_argument("--new-location", help="Name of the new control location.")
    _add_common(split_parser, output_help="Write the edited module here instead of stdout.")

    # Command: apply
    apply_parser = subparsers.add_parser(
        "apply",
        parents=[common],
        help="Apply a JSON edit script to one module.",
    )
    apply_parser.add_argument("file", metavar="FILE")
    apply_parser.add_argument("--edits", required=True, metavar="EDITS.json")
    _add_common(apply_parser, output_help="Write the edited module here instead of stdout.")

    # Command: batch
    batch_parser = subparsers.add_parser(
        "batch",
        parents=[common],
        help="Apply a JSON edit script to many modules in parallel.",
    )
    batch_parser.add_argument("files", nargs="+", metavar="FILE")
    batch_parser.add_argument("--edits", required=True, metavar="EDITS.json")
    _add_common(batch_parser, output_help="Directory for the edited modules.")

    return parser


async def async_main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    config = _config_from_args(args)

    try:
        match args.command:
            case "check":
                return handle_check(args.files, as_json=args.json, config=config)
            case "add-variable":
                request: EditRequest = AddVariable(args.name, args.init_expr, args.type_expr)
                return handle_edit(
                    args.file, [request],
                    output=args.output, in_place=args.in_place, as_json=args.json, config=config,
                )
            case "split-action":
                first_half = frozenset(v.strip() for v in args.first_half.split(",") if v.strip())
                request = SplitAction(args.action, first_half, args.new_name, args.new_location)
                return handle_edit(
                    args.file, [request],
                    output=args.output, in_place=args.in_place, as_json=args.json, config=config,
                )
            case "apply":
                return handle_edit(
                    args.file, _load_script(args.edits),
                    output=args.output, in_place=args.in_place, as_json=args.json, config=config,
                )
            case "batch":
                return await handle_batch(
                    args.files, _load_script(args.edits),
                    output_dir=args.output, in_place=args.in_place, as_json=args.json, config=config,
                )
            case None:
                parser.print_help()
                return 1
            case _:
                print(f"Unknown command: {args.command}", file=sys.stderr)
                parser.print_help()
                return 1
    except (OSError, ValueError, KeyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Synchronous entry point for the console script."""
    try:
        return asyncio.run(async_main(argv))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
