#!/usr/bin/env python3
"""CLI tools for trying routing rules locally.

Usage:
    python -m message_router.cli route --rules rules.json --message message.json
    python -m message_router.cli validate-rules rules.json

Rules files hold a JSON list of rules, or an object with a "rules" list.
Routing runs against in-memory store, cache and broker.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from message_router.broker import InMemoryBroker
from message_router.config import get_settings
from message_router.core.exceptions import RuleLoadError, RuleValidationError
from message_router.core.logging import setup_logging
from message_router.factory import create_rule_engine
from message_router.routing.cache import InMemoryCacheBackend
from message_router.routing.models import Message, parse_rules
from message_router.routing.store import InMemoryRuleStore


def _read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _rule_documents(data: Any) -> Any:
    if isinstance(data, dict) and "rules" in data:
        return data["rules"]
    return data


def validate_rules(args: argparse.Namespace) -> int:
    """Validate a rules document."""
    try:
        rules = parse_rules(_rule_documents(_read_json(args.rules_file)))
    except RuleValidationError as e:
        print(f"Invalid rules: {e.message}")
        for error in e.details.get("errors", []):
            location = ".".join(str(part) for part in error.get("loc", ()))
            print(f"  - {location}: {error.get('msg')}")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot read {args.rules_file}: {e}")
        return 1

    print(f"{len(rules)} rule(s) valid")
    for rule in rules:
        state = "active" if rule.is_active else "inactive"
        print(
            f"  {rule.id}: {rule.name} [{state}, priority={rule.priority}, "
            f"conditions={len(rule.conditions)}, actions={len(rule.actions)}]"
        )
    return 0


async def _route(args: argparse.Namespace) -> int:
    try:
        rules = parse_rules(_rule_documents(_read_json(args.rules)))
        message = Message.model_validate(_read_json(args.message))
    except RuleValidationError as e:
        print(f"Invalid rules: {e.message}")
        return 1
    except PydanticValidationError as e:
        print(f"Invalid message: {e}")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot read input: {e}")
        return 1

    settings = get_settings()
    if args.order_by_priority:
        settings = settings.model_copy(
            update={
                "routing": settings.routing.model_copy(update={"order_by_priority": True})
            }
        )

    broker = InMemoryBroker()
    engine = create_rule_engine(
        settings,
        store=InMemoryRuleStore(rules),
        broker=broker,
        cache_backend=InMemoryCacheBackend(),
    )

    try:
        result = await engine.route(message)
    except RuleLoadError as e:
        print(f"Routing deferred: {e}")
        return 1

    output: dict[str, Any] = {"result": result.to_dict()}
    if args.show_work_items:
        output["workItems"] = [
            {"queue": queue, **item.to_dict()} for queue, item in broker.submitted
        ]
    print(json.dumps(output, indent=2, default=str))
    return 0


def route(args: argparse.Namespace) -> int:
    """Route one message against a rules file."""
    return asyncio.run(_route(args))


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="message-router",
        description="Message routing rule tools",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: the configured log_level)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    route_parser = subparsers.add_parser("route", help="Route a message")
    route_parser.add_argument("--rules", required=True, help="Rules JSON file")
    route_parser.add_argument("--message", required=True, help="Message JSON file")
    route_parser.add_argument(
        "--order-by-priority",
        action="store_true",
        help="Evaluate rules by ascending priority instead of file order",
    )
    route_parser.add_argument(
        "--show-work-items",
        action="store_true",
        help="Include submitted broker work items in the output",
    )
    route_parser.set_defaults(func=route)

    validate_parser = subparsers.add_parser("validate-rules", help="Validate a rules file")
    validate_parser.add_argument("rules_file", help="Rules JSON file")
    validate_parser.set_defaults(func=validate_rules)

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(
        level=args.log_level or settings.log_level,
        json_output=settings.log_json,
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
