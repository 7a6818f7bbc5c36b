"""Fantasy Diary — launcher. Serves the API or generates one installment."""

import argparse
import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def _generate(data_dir: Path, current_time: str, dry_run: bool) -> int:
    from backend.storage import Storage
    from backend.tools import build_routers
    from fantasy_diary.config import load_settings
    from fantasy_diary.pipeline import generate_installment
    from fantasy_diary.provider import EchoProvider, create_provider
    from fantasy_diary.tool_client import HttpTransport, LocalTransport, ToolClient

    storage = Storage(data_dir)
    settings = load_settings(storage.get_config())
    if settings.tool_base_url:
        tools = ToolClient(HttpTransport(settings.tool_base_url))
    else:
        tools = ToolClient(LocalTransport(build_routers(storage)))
    provider = EchoProvider() if dry_run else create_provider(settings)

    result = asyncio.run(generate_installment(
        current_time, provider=provider, tools=tools, settings=settings, persist=not dry_run,
    ))
    print(json.dumps(result.model_dump(by_alias=True), indent=2, ensure_ascii=False))
    return 0 if result.success else 1


def main():
    parser = argparse.ArgumentParser(description="Fantasy Diary launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: $DATA_DIR or ./data)")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the API server (default)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes")

    gen = sub.add_parser("generate", help="Generate one installment and print the result")
    gen.add_argument("--time", default=None,
                     help="ISO timestamp of the installment (default: now, UTC)")
    gen.add_argument("--dry-run", action="store_true",
                     help="Use the echo provider and do not persist anything")
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    data_dir = args.data_dir or Path(os.getenv("DATA_DIR", str(ROOT / "data")))

    if args.command == "generate":
        current_time = args.time or datetime.now(timezone.utc).isoformat(timespec="minutes")
        raise SystemExit(_generate(data_dir, current_time, args.dry_run))

    import uvicorn

    os.environ["DATA_DIR"] = str(data_dir.resolve())
    print(f"Starting backend on http://localhost:{PORT} ...")
    uvicorn.run("backend.app:app", host=HOST, port=int(PORT),
                reload=getattr(args, "reload", False))


if __name__ == "__main__":
    main()
