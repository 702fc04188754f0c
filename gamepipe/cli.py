"""CLI entrypoints for gamepipe commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from .config import ConfigError, PipelineConfig, load_config
from .generation import GenerationError, ModuleGenerator, ModuleRequest
from .logging import configure_logging
from .manifests import ManifestGraphResolver
from .migrations import MigrationEngine, MigrationError
from .models import FeatureManifest, GeneratedFile, ManifestError
from .orchestrator import BuildRequest, PipelineError, PipelineOrchestrator
from .packaging import ArchiveError, BuildExporter, ExportError, extract_archive
from .safety import SourceSafetyScanner

EXIT_FINDINGS = 1
EXIT_ERROR = 2


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gamepipe",
        description="Validate, assemble and package generated game modules.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--config",
        default=".",
        help="Directory containing .gamepipe.yml (defaults to current directory).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Run the full build pipeline.")
    _add_verbose_option(build_parser, suppress_default=True)
    build_parser.add_argument("request", help="JSON file with spec, manifests and files.")
    build_parser.add_argument("--build-id", help="Override the derived build id.")
    build_parser.add_argument(
        "--no-export",
        action="store_true",
        help="Skip packaging even when the build passes.",
    )

    scan_parser = subparsers.add_parser("scan", help="Scan source files for denied capabilities.")
    _add_verbose_option(scan_parser, suppress_default=True)
    scan_parser.add_argument("files", nargs="+", help="Source files to scan.")

    graph_parser = subparsers.add_parser("graph", help="Resolve the manifest dependency graph.")
    _add_verbose_option(graph_parser, suppress_default=True)
    graph_parser.add_argument("manifests", help="JSON file holding a list of feature manifests.")

    migrate_parser = subparsers.add_parser("migrate", help="Migrate a game spec between versions.")
    _add_verbose_option(migrate_parser, suppress_default=True)
    migrate_parser.add_argument("spec", help="Game spec JSON file.")
    migrate_parser.add_argument("--template", required=True, help="Template id, e.g. idle-rpg-base.")
    migrate_parser.add_argument("--from", dest="from_version", required=True)
    migrate_parser.add_argument("--to", dest="to_version", required=True)
    migrate_parser.add_argument("--output", help="Write the migrated spec here instead of stdout.")

    generate_parser = subparsers.add_parser("generate", help="Generate a module from a request.")
    _add_verbose_option(generate_parser, suppress_default=True)
    generate_parser.add_argument("module", help="Module request JSON file.")
    generate_parser.add_argument("--output", help="Directory receiving manifest.json and files.")

    export_parser = subparsers.add_parser("export", help="Package a passing build workspace.")
    _add_verbose_option(export_parser, suppress_default=True)
    export_parser.add_argument("build_id")

    import_parser = subparsers.add_parser("import", help="Extract an exported archive.")
    _add_verbose_option(import_parser, suppress_default=True)
    import_parser.add_argument("archive")
    import_parser.add_argument("target")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for gamepipe commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose))

    try:
        config = load_config(Path(args.config))
    except ConfigError as exc:
        parser.exit(EXIT_ERROR, f"{exc}\n")

    handlers = {
        "build": _run_build,
        "scan": _run_scan,
        "graph": _run_graph,
        "migrate": _run_migrate,
        "generate": _run_generate,
        "export": _run_export,
        "import": _run_import,
        "serve": _run_serve,
    }
    handler = handlers.get(args.command)
    if handler is None:  # pragma: no cover - argparse enforces choices
        parser.exit(EXIT_ERROR, "Unknown command\n")

    try:
        status = handler(args, config)
    except (OSError, json.JSONDecodeError) as exc:
        parser.exit(EXIT_ERROR, f"gamepipe {args.command} failed: {exc}\n")
    except (
        ArchiveError,
        ExportError,
        GenerationError,
        ManifestError,
        MigrationError,
        PipelineError,
    ) as exc:
        parser.exit(
            EXIT_ERROR,
            f"gamepipe {args.command} failed: {exc}\nRun with --verbose for more details.\n",
        )
    if status:
        parser.exit(status)


def _run_build(args: argparse.Namespace, config: PipelineConfig) -> int:
    request = BuildRequest.from_dict(_load_json(args.request))
    if args.build_id:
        request.build_id = args.build_id
    if args.no_export:
        request.export = False
    report = PipelineOrchestrator(config).run_build(request)
    _print_json(report.to_dict())
    return 0 if report.status == "PASS" else EXIT_FINDINGS


def _run_scan(args: argparse.Namespace, config: PipelineConfig) -> int:
    files = [
        GeneratedFile(path=path, content=Path(path).read_text(encoding="utf-8"))
        for path in args.files
    ]
    outcome = SourceSafetyScanner(config.safety_policy()).scan_with_status(files)
    for path in outcome.unparsable:
        print(f"{path}: syntax error")
    for violation in outcome.violations:
        print(violation.describe())
    if outcome.ok:
        print(f"No violations in {len(files)} file(s)")
        return 0
    return EXIT_FINDINGS


def _run_graph(args: argparse.Namespace, config: PipelineConfig) -> int:
    payload = _load_json(args.manifests)
    if not isinstance(payload, list):
        raise ManifestError("Manifest file must contain a list of manifests")
    manifests = [FeatureManifest.from_dict(item) for item in payload]
    graph = ManifestGraphResolver(config.allowlist_prefixes).build(manifests)
    _print_json(graph.to_dict())
    return 0 if graph.ok else EXIT_FINDINGS


def _run_migrate(args: argparse.Namespace, config: PipelineConfig) -> int:
    spec = _load_json(args.spec)
    if not isinstance(spec, dict):
        raise MigrationError("Game spec must be a JSON object")
    result = MigrationEngine().migrate(spec, args.template, args.from_version, args.to_version)
    if args.output:
        _write_json(Path(args.output), result.spec)
        _print_json(result.report.to_dict())
    else:
        _print_json({"spec": result.spec, "migration": result.report.to_dict()})
    return 0


def _run_generate(args: argparse.Namespace, config: PipelineConfig) -> int:
    request = ModuleRequest.from_dict(_load_json(args.module))
    module = ModuleGenerator(config.templates_dir).generate(request)
    if not args.output:
        _print_json(module.to_dict())
        return 0
    output_dir = Path(args.output)
    _write_json(output_dir / "manifest.json", module.manifest.to_dict())
    for item in module.files:
        target = output_dir / "files" / item.path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(item.content, encoding="utf-8")
    print(f"Generated {module.manifest.module_id} ({module.generation_id}) in {output_dir}")
    return 0


def _run_export(args: argparse.Namespace, config: PipelineConfig) -> int:
    result = BuildExporter(config.workspaces_dir).export(args.build_id)
    _print_json(result.to_dict())
    return 0


def _run_import(args: argparse.Namespace, config: PipelineConfig) -> int:
    names = extract_archive(Path(args.archive), Path(args.target))
    print(f"Extracted {len(names)} file(s) into {args.target}")
    return 0


def _run_serve(args: argparse.Namespace, config: PipelineConfig) -> int:  # pragma: no cover
    from .service import run_service

    run_service(host=args.host, port=args.port, config=config)
    return 0


def _load_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


if __name__ == "__main__":
    main(sys.argv[1:])
