import asyncio
import os
import sys

import httpx
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

# Healthcheck: validate ENV, Telegram token presence, DB connectivity (SELECT 1),
# and optional enrollment service reachability.
#
# Skip the enrollment check with HEALTHCHECK_SKIP_ENROLLMENT=1
# (useful in staging or when the course service is temporarily unavailable).


async def _check_db() -> bool:
    db_url = os.getenv("DB_URL", "")
    if not db_url:
        return False
    try:
        engine = create_async_engine(db_url, pool_pre_ping=True)
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        await engine.dispose()
        return True
    except Exception:
        return False


async def _check_enrollment() -> bool:
    base = (os.getenv("ENROLLMENT_BASE_URL", "") or "").rstrip("/")
    if not base:
        return False
    token = os.getenv("ENROLLMENT_API_TOKEN", "") or ""
    headers = {"accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        timeout = httpx.Timeout(8.0, connect=4.0)
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.get(f"{base}/health", headers=headers)
            return resp.status_code < 500
    except httpx.HTTPError:
        return False


def main() -> int:
    if not os.getenv("TELEGRAM_BOT_TOKEN"):
        print("missing TELEGRAM_BOT_TOKEN", file=sys.stderr)
        return 1

    if not asyncio.run(_check_db()):
        print("db not ready", file=sys.stderr)
        return 1

    skip = os.getenv("HEALTHCHECK_SKIP_ENROLLMENT", "0").strip().lower() in {"1", "true", "yes", "on"}
    if not skip and not asyncio.run(_check_enrollment()):
        print("enrollment service not ready", file=sys.stderr)
        return 1

    print("ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
