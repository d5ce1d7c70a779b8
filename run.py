"""API 로컬 실행. 워커는 `celery -A visibility.worker worker -B`로 별도 기동."""
import argparse
import asyncio
import sys

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

import uvicorn

from visibility.core.config import settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the AI visibility API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=settings.environment != "production",
        help="auto-reload on code changes (off by default in production)",
    )
    args = parser.parse_args()
    uvicorn.run("visibility.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
