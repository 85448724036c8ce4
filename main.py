import asyncio
import anyio
import argparse
from pathlib import Path
from src.toolmatch.tool_match import ToolMatch
from src.toolmatch.cli import cmd_batch, cmd_catalog, cmd_health, cmd_recommend, DEFAULT_YAML


def parse_args():
    parser = argparse.ArgumentParser(description="ToolMatch tool recommendation engine")
    sub = parser.add_subparsers(dest="command", required=True)

    # serve
    serve = sub.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", type=str, default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8090)
    serve.add_argument("--config", type=str, default=None, help="Path to the YAML config")
    serve.add_argument("--audit-dir", type=str, default=None, help="Write a JSONL audit trail here")
    serve.add_argument("--no-monitor", action="store_true", help="Do not start the health monitor")
    serve.add_argument("--log-json", action="store_true", help="Write structured JSON logs to stderr")
    serve.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default="INFO"
    )

    # recommend
    rec = sub.add_parser("recommend", help="Recommend a tool for one task")
    rec.add_argument("task", help="Task description")
    rec.add_argument("--config", type=str, default=None)
    rec.add_argument("--free-only", action="store_true")
    rec.add_argument("--budget", choices=["free", "low", "medium", "high"], default=None)
    rec.add_argument("--category", action="append", default=None)
    rec.add_argument("--json", action="store_true", help="Print the raw result")

    # batch
    batch = sub.add_parser("batch", help="Recommend tools for several tasks")
    batch.add_argument("tasks", nargs="+", help="Task descriptions")
    batch.add_argument("--config", type=str, default=None)
    batch.add_argument("--mode", choices=["sequential", "parallel"], default=None)
    batch.add_argument("--free-only", action="store_true")

    # health
    health = sub.add_parser("health", help="Run one round of health probes")
    health.add_argument("--config", type=str, default=None)

    # catalog
    cat = sub.add_parser("catalog", help="List the configured tool catalog")
    cat.add_argument("--config", type=str, default=None)
    cat.add_argument("--category", type=str, default=None)

    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    yaml_path = Path(args.config) if getattr(args, "config", None) else DEFAULT_YAML

    if args.command == "serve":
        server = ToolMatch(
            host=args.host,
            port=args.port,
            log_level=args.log_level,
            log_json=args.log_json,
            config_path=args.config,
            audit_dir=args.audit_dir,
            monitor_enabled=not args.no_monitor,
        )
        asyncio.run(server.run())

    elif args.command == "recommend":
        async def _recommend():
            return await cmd_recommend(
                args.task, yaml_path, free_only=args.free_only, budget=args.budget,
                categories=args.category, as_json=args.json,
            )
        print(anyio.run(_recommend))

    elif args.command == "batch":
        async def _batch():
            return await cmd_batch(args.tasks, yaml_path, mode=args.mode, free_only=args.free_only)
        print(anyio.run(_batch))

    elif args.command == "health":
        async def _health():
            return await cmd_health(yaml_path)
        print(anyio.run(_health))

    elif args.command == "catalog":
        print(cmd_catalog(yaml_path, category=args.category))
