#!/usr/bin/env python3
"""
Workline Admin CLI

Operator tool for the work store and the published device status.
Queuing an item here is the only way work becomes eligible for dispatch.

Usage:
    workline-admin init-db --seed
    workline-admin add LAV010 "Custom job" 45
    workline-admin list --state QUEUED
    workline-admin queue LAV010
    workline-admin log --limit 20
    workline-admin status
    workline-admin status --url http://127.0.0.1:8090

Output: JSON to stdout
"""

import argparse
import json
import sys

import httpx

from workline.common.config import GatewayConfig, load_config_file
from workline.common.exceptions import ConfigError, StoreError
from workline.common.logging_setup import set_service_log_level
from workline.common.models import WorkState
from workline.common.state import read_device_status
from workline.services.store.local_db import WorkStore

HTTP_TIMEOUT_S = 5.0


def _open_store(args: argparse.Namespace, config: GatewayConfig) -> WorkStore:
    return WorkStore(args.db or config.database.path)


def cmd_init_db(args: argparse.Namespace, config: GatewayConfig) -> dict:
    store = _open_store(args, config)
    if args.reset:
        store.reset()
    seeded = store.seed_samples() if args.seed else []
    return {
        "success": True,
        "database": str(store.db_path),
        "reset": args.reset,
        "seeded": [item.code for item in seeded],
        "items": store.count_by_state(),
    }


def cmd_add(args: argparse.Namespace, config: GatewayConfig) -> dict:
    store = _open_store(args, config)
    item = store.create_item(args.code, args.name, args.duration)
    return {"success": True, "item": item.to_dict()}


def cmd_list(args: argparse.Namespace, config: GatewayConfig) -> dict:
    store = _open_store(args, config)
    state = WorkState(args.state) if args.state else None
    items = store.list_items(state)
    return {
        "success": True,
        "count": len(items),
        "items": [item.to_dict() for item in items],
    }


def cmd_queue(args: argparse.Namespace, config: GatewayConfig) -> dict:
    store = _open_store(args, config)
    item = store.find_item(args.item)
    if item is None:
        return {"success": False, "error": f"work item '{args.item}' not found"}

    if not store.queue_item(item.id):
        return {
            "success": False,
            "error": f"work item {item.code} is {item.state.value}, only CONFIGURED items can be queued",
        }

    return {"success": True, "item": store.get_item(item.id).to_dict()}


def cmd_log(args: argparse.Namespace, config: GatewayConfig) -> dict:
    store = _open_store(args, config)
    work_id = None
    if args.work:
        item = store.find_item(args.work)
        if item is None:
            return {"success": False, "error": f"work item '{args.work}' not found"}
        work_id = item.id

    events = store.list_events(limit=args.limit, work_id=work_id)
    return {
        "success": True,
        "count": len(events),
        "events": [event.to_dict() for event in events],
    }


def cmd_status(args: argparse.Namespace, config: GatewayConfig) -> dict:
    if args.url:
        url = args.url.rstrip("/") + "/status"
        try:
            response = httpx.get(url, timeout=HTTP_TIMEOUT_S)
            response.raise_for_status()
        except httpx.HTTPError as e:
            return {"success": False, "error": f"gateway not reachable at {url}: {e}"}
        return {"success": True, "source": url, "status": response.json()}

    path = args.status_file or config.status.path
    status = read_device_status(path, stale_after_s=config.status.stale_after_s)
    return {"success": True, "source": str(path), "status": status}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workline-admin",
        description="Manage work items and read the gateway status",
    )
    parser.add_argument("--config", "-c", help="Gateway configuration file (YAML)")
    parser.add_argument("--db", help="Work store path (overrides config)")
    parser.add_argument("--status-file", help="Status file path (overrides config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show store logs")

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create the database schema")
    init_parser.add_argument("--seed", action="store_true", help="Insert sample work items")
    init_parser.add_argument("--reset", action="store_true", help="Delete all items and events first")

    add_parser = subparsers.add_parser("add", help="Create a work item (CONFIGURED)")
    add_parser.add_argument("code", help="Unique short code, e.g. LAV001")
    add_parser.add_argument("name", help="Display name")
    add_parser.add_argument("duration", type=int, help="Duration in seconds")

    list_parser = subparsers.add_parser("list", help="List work items, newest first")
    list_parser.add_argument("--state", choices=[s.value for s in WorkState], help="Filter by state")

    queue_parser = subparsers.add_parser("queue", help="Queue a CONFIGURED item for dispatch")
    queue_parser.add_argument("item", help="Item id or code")

    log_parser = subparsers.add_parser("log", help="Show the work event log, newest first")
    log_parser.add_argument("--limit", type=int, default=50, help="Max events (default 50)")
    log_parser.add_argument("--work", help="Only events for this item id or code")

    status_parser = subparsers.add_parser("status", help="Show the published device status")
    status_parser.add_argument("--url", help="Query a running gateway's HTTP endpoint instead")

    return parser


COMMANDS = {
    "init-db": cmd_init_db,
    "add": cmd_add,
    "list": cmd_list,
    "queue": cmd_queue,
    "log": cmd_log,
    "status": cmd_status,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # Keep stdout clean JSON unless asked otherwise
    set_service_log_level("DEBUG" if args.verbose else "ERROR")

    try:
        config = load_config_file(args.config) if args.config else GatewayConfig()
        result = COMMANDS[args.command](args, config)
    except (ConfigError, StoreError) as e:
        result = {"success": False, "error": e.message}

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())
