# backend/scripts/send_weekly_digest.py
"""Run the weekly digest batch once, outside the scheduler.

    python scripts/send_weekly_digest.py              # email every user
    python scripts/send_weekly_digest.py --preview a@b.com --out digest.html
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Make sure 'myquant' is importable (run from anywhere)
sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx

from myquant.core.config import settings
from myquant.db import connect_to_mongo, close_mongo_connection, get_db, get_repository
from myquant.db.repositories import UserRepository
from myquant.db.schemas import User
from myquant.tasks.scheduler import send_weekly_digests
from myquant.tasks.weekly_digest import build_digest_assembler


async def main(args) -> int:
    await connect_to_mongo()
    try:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, follow_redirects=True) as http:
            assembler = build_digest_assembler(get_db(), http)
            users = get_repository(UserRepository)

            if args.preview:
                doc = await users.find_by_email(args.preview)
                if not doc:
                    print(f"No user with email {args.preview}")
                    return 1
                outcome = await assembler.run(User.model_validate(doc), send=False)
                if outcome.digest is None:
                    print("User has no holdings or research stocks")
                    return 1
                Path(args.out).write_text(assembler.dispatcher.render(outcome.digest), encoding="utf-8")
                print(f"Preview written to {args.out} (degraded: {outcome.degraded_tickers or 'none'})")
                return 0

            report = await send_weekly_digests(assembler, users)
            print(report.model_dump_json(indent=2))
            return 1 if report.failed else 0
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Send (or preview) the myquant. weekly digest")
    parser.add_argument("--preview", metavar="EMAIL", help="render one user's digest instead of sending")
    parser.add_argument("--out", default="digest_preview.html", help="where to write the preview")
    sys.exit(asyncio.run(main(parser.parse_args())))
