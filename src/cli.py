#!/usr/bin/env python3
"""CLI entry point for cluster-bootstrap.

Noun subcommands:
- generate: Compile a regional spec into manifests and register it with GitOps
- remove:   Remove a cluster from the hub and the repository
- status:   Compare declared clusters with live hub state
- validate: Validate regional specs

Exit codes: 0 on success (including best-effort removal with warnings),
1 on validation failure, a missing required argument, or an unreachable hub.
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from common import FAIL_MARK, PASS_MARK, WARN_MARK, run_command, status_line
from compiler import ManifestCompiler
from config import BootstrapConfig, load_config
from errors import BootstrapError, ConfigError, ConnectivityError, ValidationError
from generators import ClusterManifestSet, GeneratorSettings
from gitops import GitOpsRegistrar
from hub import HubClient
from regional_spec import find_spec, list_declared_clusters, load_spec, spec_paths
from remover import MONITOR_TIMEOUT, LifecycleRemover
from reporting.status import FORMATS, render
from status import StateCollector, classify, select_probes
from status.probes import TIERS

NOUN_COMMANDS = {
    "generate": "Compile a regional spec into manifests and register it",
    "remove": "Remove a cluster from the hub and the repository",
    "status": "Report drift and health across declared and live clusters",
    "validate": "Validate regional specs",
}

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)


def get_version():
    """Get version from git tags (do not use hardcoded VERSION constant)."""
    rc, out, _ = run_command(['git', 'describe', '--tags', '--abbrev=0'], cwd=Path(__file__).parent, timeout=10)
    return out.strip() if rc == 0 and out.strip() else 'dev'


def _setup_logging(verbose: bool, machine_output: bool) -> None:
    """Configure logging based on flags.

    Machine-readable output modes move log records to stderr.
    """
    if machine_output:
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        root_logger.addHandler(stderr_handler)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _common_parser(verb: str, description: str) -> argparse.ArgumentParser:
    """Build argument parser with options shared by all nouns."""
    parser = argparse.ArgumentParser(
        prog=f'cluster-bootstrap {verb}',
        description=description,
    )
    parser.add_argument(
        '--repo',
        type=Path,
        help='Bootstrap repository root (default: $BOOTSTRAP_REPO or nearest ancestor with regions/)',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )
    return parser


def _load_config(args) -> BootstrapConfig:
    """Load repository config, exiting 1 on error."""
    try:
        return load_config(args.repo)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _require_name(args, verb: str) -> str:
    if not args.name:
        print(f"Error: cluster name is required (cluster-bootstrap {verb} <name>)", file=sys.stderr)
        sys.exit(1)
    return args.name


def _hub_client(config: BootstrapConfig, timeout: int = 60) -> HubClient:
    return HubClient(config.oc_binary, kubeconfig=config.kubeconfig, timeout=timeout)


def push_to_gitea(config: BootstrapConfig, paths: list[Path], message: str) -> tuple[bool, str]:
    """Commit generated paths and push them to the Gitea remote.

    Returns:
        (success, message) tuple
    """
    repo = config.repo_dir
    relative = [str(p.relative_to(repo)) for p in paths]
    steps = [
        (['git', 'add', '--', *relative], 'git add'),
        (['git', 'commit', '-m', message, '--', *relative], 'git commit'),
        (['git', 'push', config.gitea_remote, f'HEAD:{config.gitea_branch}'], 'git push'),
    ]
    for cmd, label in steps:
        rc, out, err = run_command(cmd, cwd=repo, timeout=120)
        if rc != 0:
            if label == 'git commit' and 'nothing to commit' in (out + err):
                logger.info("Nothing to commit, pushing current HEAD")
                continue
            return False, f"{label} failed: {(err or out).strip()}"
    return True, f"Pushed to {config.gitea_remote}/{config.gitea_branch}"


def generate_main(argv: list) -> int:
    """Handle 'generate' noun."""
    parser = _common_parser('generate', 'Compile a regional spec into manifests and register it with GitOps')
    parser.add_argument('name', nargs='?', help='Cluster name (e.g., ocp-01, eks-02, hcp-03)')
    parser.add_argument(
        '--spec-file',
        type=Path,
        help='Regional spec path (default: regions/<region>/<name>/region.yaml)',
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show the file plan without writing',
    )
    parser.add_argument(
        '--push-to-gitea',
        action='store_true',
        help='Commit generated files and push them to the Gitea remote',
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs to stderr)',
    )
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)
    name = _require_name(args, 'generate')
    config = _load_config(args)

    try:
        spec_file = args.spec_file or find_spec(config.regions_dir, name)
        spec = load_spec(spec_file)
        if spec.name != name:
            raise ValidationError(f"Spec {spec_file} declares '{spec.name}', expected '{name}'")
        compiler = ManifestCompiler(GeneratorSettings(
            secret_store=config.secret_store,
            gitops_namespace=config.gitops_namespace,
        ))
        manifest_set = compiler.compile(spec)
    except ValidationError as e:
        print(status_line('fail', f"Validation failed: {e}"), file=sys.stderr)
        return 1

    registrar = GitOpsRegistrar(config.gitops_dir, config.repo_url, config.target_revision, config.gitops_namespace)
    entry = registrar.entry_file(name)

    if args.dry_run:
        plan = compiler.plan(manifest_set, config.repo_dir)
        plan += compiler.plan(ClusterManifestSet(name, spec.type, [entry]), config.repo_dir)
        index_action = 'unchanged' if registrar.index.contains(entry.filename) else 'insert'
        if args.json_output:
            print(json.dumps({
                'cluster': name,
                'type': spec.type.value,
                'dry_run': True,
                'files': [{'action': action, 'path': path} for action, path in plan],
                'index': index_action,
            }, indent=2))
            return 0
        print(f"DRY-RUN: generate {name} ({spec.type.value})")
        for action, path in plan:
            print(f"  [{action:^9}] {path}")
        print(f"  [{index_action:^9}] {config.index_file.relative_to(config.repo_dir)}")
        return 0

    written = compiler.write(manifest_set, config.repo_dir)
    entry_path = registrar.register(name)
    written.append(entry_path)
    written.append(config.index_file)

    pushed: Optional[tuple[bool, str]] = None
    if args.push_to_gitea:
        pushed = push_to_gitea(config, written, f"Add cluster {name}")

    if args.json_output:
        output = {
            'cluster': name,
            'type': spec.type.value,
            'files': [str(p.relative_to(config.repo_dir)) for p in written],
        }
        if pushed is not None:
            output['pushed'] = pushed[0]
            output['push_message'] = pushed[1]
        print(json.dumps(output, indent=2))
    else:
        print(status_line('pass', f"Generated {len(manifest_set.files)} file(s) for {name} ({spec.type.value})"))
        print(status_line('pass', f"Registered {entry.filename} in {config.index_file.name}"))
        if pushed is not None:
            print(status_line('pass' if pushed[0] else 'fail', pushed[1]))

    overall = 'warn' if pushed is not None and not pushed[0] else 'pass'
    if not args.json_output:
        mark = WARN_MARK if overall == 'warn' else PASS_MARK
        print(f"{mark} generate {name}: {overall.upper()}")
    return 0


def remove_main(argv: list) -> int:
    """Handle 'remove' noun."""
    parser = _common_parser('remove', 'Remove a cluster from the hub and the repository')
    parser.add_argument('name', nargs='?', help='Cluster name')
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show the phase plan without changing anything',
    )
    parser.add_argument(
        '--force',
        action='store_true',
        help='Skip existence pre-checks and confirmation',
    )
    parser.add_argument(
        '--yes', '-y',
        action='store_true',
        help='Skip confirmation prompt',
    )
    parser.add_argument(
        '--timeout',
        type=int,
        default=MONITOR_TIMEOUT,
        help=f'Deprovision monitor timeout in seconds (default: {MONITOR_TIMEOUT})',
    )
    parser.add_argument(
        '--report-dir', '-r',
        type=Path,
        help='Write a JSON phase report to this directory',
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs to stderr)',
    )
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)
    name = _require_name(args, 'remove')
    config = _load_config(args)

    remover = LifecycleRemover(config, _hub_client(config), name, dry_run=args.dry_run,
                               monitor_timeout=args.timeout)

    if not args.force and not args.dry_run:
        ok, message = remover.precheck()
        if not ok:
            print(status_line('fail', message), file=sys.stderr)
            print("Use --force to skip pre-checks", file=sys.stderr)
            return 1
        logger.info(message)

    # Confirmation for destructive operation
    if not args.dry_run and not args.force and not args.yes:
        print(f"\nWARNING: This will remove cluster '{name}' from the hub and the repository.")
        print("This action cannot be undone.")
        response = input("Continue? [y/N] ").strip().lower()
        if response != 'y':
            print("Aborted.")
            return 1

    report = remover.run()

    if args.report_dir:
        path = report.write_json(args.report_dir)
        logger.info(f"Wrote report {path}")

    if args.json_output:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        if args.dry_run:
            print(f"DRY-RUN: remove {name}")
        for line in report.phase_lines():
            print(line)
        print(report.summary_line())
    return 0


def _selected_tiers(args) -> list[str]:
    return [tier for tier in TIERS if getattr(args, f"health_{tier}")]


def status_main(argv: list) -> int:
    """Handle 'status' noun."""
    parser = _common_parser('status', 'Report drift and health across declared and live clusters')
    parser.add_argument('name', nargs='?', help='Limit to one cluster')
    for tier, probes in TIERS.items():
        parser.add_argument(
            f'--health-{tier}',
            action='store_true',
            help=f"Health tier: {', '.join(probes) if probes else 'ACM/namespace/ArgoCD only'}",
        )
    parser.add_argument(
        '--format',
        choices=FORMATS,
        default='table',
        help='Output format (default: table)',
    )
    parser.add_argument(
        '--issues-only',
        action='store_true',
        help='Only show clusters with issues',
    )
    parser.add_argument(
        '--parallel',
        type=int,
        default=1,
        help='Requested parallel checks (checks currently run sequentially)',
    )
    parser.add_argument(
        '--timeout',
        type=int,
        default=120,
        help='Per-cluster deadline for health probes in seconds (default: 120)',
    )
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.format != 'table')
    config = _load_config(args)

    if args.parallel > 1:
        logger.info(f"--parallel {args.parallel} requested; checks run sequentially")

    hub = _hub_client(config)
    collector = StateCollector(config, hub, probes=select_probes(_selected_tiers(args)), timeout=args.timeout)
    start = time.time()
    try:
        records = collector.collect(only=args.name)
    except ConnectivityError as e:
        print(status_line('fail', f"Hub API unreachable: {e}"), file=sys.stderr)
        return 1
    except BootstrapError as e:
        print(status_line('fail', str(e)), file=sys.stderr)
        return 1

    if args.name and not records:
        print(status_line('fail', f"Cluster {args.name} not found in repository or on hub"), file=sys.stderr)
        return 1

    for record in records:
        record.issues = classify(record)
    logger.debug(f"Collected {len(records)} record(s) in {time.time() - start:.1f}s")

    print(render(records, fmt=args.format, issues_only=args.issues_only))
    return 0


def validate_main(argv: list) -> int:
    """Handle 'validate' noun."""
    parser = _common_parser('validate', 'Validate regional specs')
    parser.add_argument('name', nargs='?', help='Cluster name (default: all declared clusters)')
    parser.add_argument(
        '--spec-file',
        type=Path,
        help='Validate a single spec file',
    )
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, False)

    if args.spec_file:
        targets = [(str(args.spec_file), [args.spec_file])]
    else:
        config = _load_config(args)
        names = [args.name] if args.name else list_declared_clusters(config.regions_dir)
        targets = [(n, spec_paths(config.regions_dir, n)) for n in names]
        if not targets:
            print(status_line('warn', f"No regional specs under {config.regions_dir}"))

    failures = 0
    for label, paths in targets:
        try:
            if len(paths) != 1:
                find_spec(config.regions_dir, label)
            spec = load_spec(paths[0])
            print(status_line('pass', f"{spec.name} ({spec.type.value}, {spec.region}, {spec.replicas} workers)"))
        except ValidationError as e:
            failures += 1
            print(status_line('fail', f"{label}: {e}"))

    if failures:
        print(f"{FAIL_MARK} validate: FAIL ({failures} of {len(targets)} invalid)")
        return 1
    print(f"{PASS_MARK} validate: PASS ({len(targets)} spec(s))")
    return 0


HANDLERS = {
    "generate": generate_main,
    "remove": remove_main,
    "status": status_main,
    "validate": validate_main,
}


def print_usage():
    """Print top-level usage showing noun commands."""
    print(f"cluster-bootstrap {get_version()}")
    print()
    print("Usage: cluster-bootstrap <noun> [options]")
    print()
    print("Commands:")
    for noun, desc in NOUN_COMMANDS.items():
        print(f"  {noun:<10} {desc}")
    print()
    print("Run 'cluster-bootstrap <noun> --help' for command-specific options.")
    print()
    print("Examples:")
    print("  cluster-bootstrap validate")
    print("  cluster-bootstrap generate eks-01 --dry-run")
    print("  cluster-bootstrap generate ocp-01 --push-to-gitea")
    print("  cluster-bootstrap status --health-deep --issues-only")
    print("  cluster-bootstrap remove hcp-03 --yes")


def main(argv: Optional[list] = None) -> int:
    """CLI entry point: dispatch to noun handlers."""
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] in ('-h', '--help'):
        print_usage()
        return 0
    if argv[0] == '--version':
        print(f"cluster-bootstrap {get_version()}")
        return 0

    noun = argv[0]
    if noun not in HANDLERS:
        print(f"Error: Unknown command '{noun}'")
        print_usage()
        return 1
    return HANDLERS[noun](argv[1:])


if __name__ == '__main__':
    sys.exit(main())
