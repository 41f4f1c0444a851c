#!/usr/bin/env python3
"""Re-run grading for sessions left in 'pending' after a failed run.
Usage: python scripts/retrigger_pending_sessions.py [session_id ...]
With no ids, every pending session that has recorded an error is retried once.
Sessions that already used MAX_PROCESSING_ATTEMPTS are marked 'failed' instead;
naming a session explicitly always runs it.
"""
import os
import sys
import asyncio

# Ensure backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.config import load_settings, logger
from app.errors import GradingPipelineError
from app.models.session import SessionStatus
from app.services import build_services


async def pending_sessions(services, limit=100):
    cursor = services.database.db.grading_sessions.find(
        {"status": SessionStatus.PENDING, "last_error": {"$ne": None}},
        {"_id": 0, "id": 1, "attempts": 1},
    ).sort("updated_at", 1)
    return await cursor.to_list(limit)


async def exhausted_to_failed(services, docs):
    """Mark sessions over the attempt cap as failed and return the ids still worth retrying."""
    max_attempts = services.settings.max_processing_attempts
    retry = []
    for doc in docs:
        if doc.get("attempts", 0) < max_attempts:
            retry.append(doc["id"])
        elif await services.sessions.mark_failed(doc["id"]):
            print(f"⏭️ {doc['id']}: gave up after {doc['attempts']} attempts, marked failed")
    return retry


async def main(session_ids):
    services = build_services(load_settings())
    try:
        if not session_ids:
            session_ids = await exhausted_to_failed(services, await pending_sessions(services))
        print(f"Retrying {len(session_ids)} session(s)")

        completed = 0
        for session_id in session_ids:
            try:
                result = await services.orchestrator.process(session_id)
                completed += 1
                print(f"✅ {session_id}: score={result['score']}")
            except GradingPipelineError as e:
                logger.error(f"Retry failed for {session_id}: {e}")
                print(f"❌ {session_id}: {e.kind}: {e.message}")

        print(f"Done: {completed}/{len(session_ids)} completed")
    finally:
        services.close()


if __name__ == '__main__':
    asyncio.run(main(sys.argv[1:]))
