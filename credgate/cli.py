"""credgate.cli

Command line interface entry point for credgate.

Design constraints:
- argparse-based.
- Lazy imports: do not import the service graph at parse time.
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CliContext:
    repo_root: Path


def _repo_root_from_cwd() -> Path:
    return Path.cwd()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credgate",
        description="Credential access control and secret redaction.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit.",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Print configuration, database and key status")

    p_types = sub.add_parser("types", help="Inspect the credential type catalog")
    types_sub = p_types.add_subparsers(dest="types_command")
    types_sub.add_parser("list", help="List known credential types")
    p_show = types_sub.add_parser("show", help="Show the flattened schema of one type")
    p_show.add_argument("name")

    p_transfer = sub.add_parser("transfer", help="Move all credentials from one project to another")
    p_transfer.add_argument("--from", dest="from_project", required=True, help="Source project id")
    p_transfer.add_argument("--to", dest="to_project", required=True, help="Destination project id")

    return parser


def _print_version() -> None:
    from credgate import __version__

    print(f"credgate v{__version__}")


def _load_config(ctx: CliContext):
    from credgate.core.config import Config

    return Config.from_repo_defaults(ctx.repo_root)


def _cmd_status(ctx: CliContext, args: argparse.Namespace) -> int:
    from credgate.core.exceptions import CredgateError
    from credgate.credentials.schema import TypeRegistry, TypeSchemaResolver

    cfg_path = ctx.repo_root / "config" / "default.yaml"
    try:
        config = _load_config(ctx)
    except CredgateError as e:
        print("credgate status")
        print(f"- config: {cfg_path} (error: {e})")
        print("- system health: degraded")
        return 1

    try:
        registry = TypeRegistry.from_yaml(config.types_path)
        TypeSchemaResolver(registry).validate_all()
        types_status = f"{len(registry)} types"
    except CredgateError as e:
        types_status = f"error: {e}"

    db_path = config.db_path
    db_status = "present" if db_path.exists() else "missing"
    key_status = "set" if os.environ.get(config.cipher.key_env_var) else "missing"

    print("credgate status")
    print(f"- config: {cfg_path}")
    print(f"- types: {config.types_path} ({types_status})")
    print(f"- db: {db_path} ({db_status})")
    print(f"- encryption key: {config.cipher.key_env_var} ({key_status})")

    healthy = key_status == "set" and not types_status.startswith("error")
    print(f"- system health: {'ok' if healthy else 'degraded'}")
    return 0


def _cmd_types(ctx: CliContext, args: argparse.Namespace) -> int:
    from credgate.core.exceptions import CredgateError
    from credgate.credentials.schema import TypeRegistry, TypeSchemaResolver

    if not args.types_command:
        print("usage: credgate types {list,show}", file=sys.stderr)
        return 2

    try:
        config = _load_config(ctx)
        registry = TypeRegistry.from_yaml(config.types_path)
        resolver = TypeSchemaResolver(registry)

        if args.types_command == "list":
            for name in registry.names():
                schema = registry.get(name)
                parents = f" (extends {', '.join(schema.extends)})" if schema.extends else ""
                print(f"{name}{parents}")
            return 0

        fields = resolver.resolve(args.name)
    except CredgateError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(args.name)
    for f in fields:
        flags = []
        if f.is_password:
            flags.append("password")
        if not f.is_expression_allowed:
            flags.append("no-expression")
        print(f"- {f.name}" + (f" [{', '.join(flags)}]" if flags else ""))
    return 0


def _cmd_transfer(ctx: CliContext, args: argparse.Namespace) -> int:
    from credgate.bootstrap import build_container
    from credgate.core.exceptions import CredgateError

    try:
        config = _load_config(ctx)
        container = build_container(config, setup_logging=True)
    except CredgateError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    try:
        result = container.service.transfer_all(args.from_project, args.to_project)
    except CredgateError as e:
        print(f"transfer failed: {e}", file=sys.stderr)
        return 1
    finally:
        container.close()

    print(f"transferred {args.from_project} -> {args.to_project}")
    print(f"- owned: {len(result.owned)}")
    print(f"- shared: {len(result.shared)}")
    print(f"- overwritten: {len(result.overwritten)}")
    print(f"- skipped: {len(result.skipped)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        _print_version()
        return 0

    if not args.command:
        parser.print_help()
        return 2

    ctx = CliContext(repo_root=_repo_root_from_cwd())

    dispatch: dict[str, Callable[[CliContext, argparse.Namespace], int]] = {
        "status": _cmd_status,
        "types": _cmd_types,
        "transfer": _cmd_transfer,
    }

    fn = dispatch.get(str(args.command))
    if fn is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2

    return int(fn(ctx, args))


if __name__ == "__main__":
    raise SystemExit(main())
