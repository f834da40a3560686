"""The ``config`` commands that manage contexts in the configuration file."""

from __future__ import annotations

import argparse
import sys
from typing import Any

from layerform.config import Config, ConfigError, init_config, load
from layerform.contexts import ConfigContext, ContextValidationError, validate_context


def register(subparsers: Any) -> argparse.ArgumentParser:
    """Add the ``config`` command and its subcommands."""
    config_parser = subparsers.add_parser(
        "config",
        help="Modify layerform config file",
        description='Modify layerform config file using subcomands like "layerform config set-context"',
    )

    def show_help(_args: argparse.Namespace) -> int:
        config_parser.print_help()
        return 0

    config_parser.set_defaults(func=show_help)
    commands = config_parser.add_subparsers(title="commands")

    set_parser = commands.add_parser(
        "set-context",
        help="Set a context entry in layerform config file",
        description=(
            "Set a context entry in layerform config file. Specifying a name that already "
            "exists will update that context values unless the type is different."
        ),
    )
    set_parser.add_argument("name")
    set_parser.add_argument(
        "-t",
        "--type",
        default="local",
        help='type of the context entry, must be "local", "s3" or "cloud"',
    )
    set_parser.add_argument("--dir", default="", help="directory to store definitions and instances")
    set_parser.add_argument("--bucket", default="", help="bucket to store definitions and instances")
    set_parser.add_argument("--region", default="", help="region where bucket is located")
    set_parser.add_argument("--url", default="", help="url of layerform cloud")
    set_parser.add_argument("--email", default="", help="email of layerform cloud user")
    set_parser.add_argument("--password", default="", help="password of layerform cloud user")
    set_parser.set_defaults(func=set_context)

    use_parser = commands.add_parser(
        "use-context",
        help="Use a context entry from layerform config file",
        description="Use a context entry from layerform config file.",
    )
    use_parser.add_argument("name")
    use_parser.set_defaults(func=use_context)

    get_parser = commands.add_parser(
        "get-contexts",
        help="Display contexts from layerform config file",
        description="Display contexts from layerform config file",
    )
    get_parser.set_defaults(func=get_contexts)

    return config_parser


def _load_optional() -> Config | None:
    try:
        return load()
    except ConfigError as exc:
        if exc.missing:
            return None
        raise


def set_context(args: argparse.Namespace) -> int:
    name = args.name
    context_type = args.type

    if context_type == "local":
        ctx = ConfigContext(type=context_type, dir=(args.dir or "").strip())
    elif context_type == "s3":
        ctx = ConfigContext(
            type=context_type,
            bucket=(args.bucket or "").strip(),
            region=(args.region or "").strip(),
        )
    elif context_type == "cloud":
        ctx = ConfigContext(
            type=context_type,
            url=(args.url or "").strip(),
            email=(args.email or "").strip(),
            password=(args.password or "").strip(),
        )
    else:
        print(f"invalid type {context_type}", file=sys.stderr)
        return 1

    try:
        validate_context(ctx)
    except ContextValidationError as exc:
        print(f"invalid context configuration: {exc}", file=sys.stderr)
        return 1

    try:
        cfg = _load_optional()
    except ConfigError as exc:
        print(f"fail to open config file: {exc}", file=sys.stderr)
        return 1

    try:
        if cfg is None:
            action = "created"
            cfg = init_config(name, ctx)
        else:
            previous = cfg.contexts.get(name)
            action = "created" if previous is None else "modified"
            if previous is not None and previous.type != context_type:
                print(
                    f"{name} context already exists with a different type of "
                    f"{previous.type}, context type can't be updated.",
                    file=sys.stderr,
                )
                return 1
            cfg.contexts[name] = ctx

        cfg.current_context = name
        cfg.save()
    except ConfigError as exc:
        print(f"fail to save config file: {exc}", file=sys.stderr)
        return 1

    print(f'Context "{name}" {action}.')
    return 0


def use_context(args: argparse.Namespace) -> int:
    name = args.name

    try:
        cfg = _load_optional()
    except ConfigError as exc:
        print(f"fail to open config file: {exc}", file=sys.stderr)
        return 1

    if cfg is None or name not in cfg.contexts:
        print(f'no context exists with the name "{name}".', file=sys.stderr)
        return 1

    cfg.current_context = name
    try:
        cfg.save()
    except ConfigError as exc:
        print(f"fail to save config file: {exc}", file=sys.stderr)
        return 1

    print(f'Switched to context "{name}".')
    return 0


def _format_table(rows: list[list[str]], padding: int) -> str:
    columns = max(len(row) for row in rows)
    widths = [
        max(len(row[i]) for row in rows if i < len(row)) + padding for i in range(columns - 1)
    ]
    lines = []
    for row in rows:
        cells = [cell.ljust(widths[i]) for i, cell in enumerate(row[:-1])]
        lines.append("".join(cells) + row[-1])
    return "\n".join(lines) + "\n"


def get_contexts(args: argparse.Namespace) -> int:
    try:
        cfg = load()
    except ConfigError:
        print("No contexts configure, configure contexts using the set-context command.")
        return 0

    rows = [["CURRENT", "NAME", "TYPE", "LOCATION"]]
    for name, ctx in cfg.contexts.items():
        try:
            location = ctx.location()
        except ValueError:
            location = ""
        rows.append(["*" if name == cfg.current_context else "", name, ctx.type, location])

    sys.stdout.write(_format_table(rows, 3))
    return 0