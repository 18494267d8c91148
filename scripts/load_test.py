"""Load test: hammer a running Kindred server with simultaneous mutual likes
and message bursts, then check that no pair ended up with two matches and
that every message log is contiguous and ordered.

User ids are read from the server's database (seed them first with
``python -m scripts.seed_users``).

Usage: python -m scripts.load_test [--pairs 20] [--burst 10] [--base-url http://localhost:8000]
"""
import argparse
import asyncio
import statistics
import sys
import time
import uuid
from typing import Any

sys.path.insert(0, ".")

from sqlalchemy import select

from kindred.client.api import KindredClient
from kindred.database import async_session_factory, engine
from kindred.models import User


DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_PAIRS = 20
DEFAULT_BURST = 10


async def load_user_ids(limit: int) -> list[uuid.UUID]:
    async with async_session_factory() as session:
        result = await session.execute(
            select(User.id).where(User.is_active.is_(True)).order_by(User.created_at).limit(limit)
        )
        ids = list(result.scalars().all())
    await engine.dispose()
    return ids


async def mutual_like(
    base_url: str, a: uuid.UUID, b: uuid.UUID, results: dict[str, Any]
) -> uuid.UUID | None:
    """Fire A→B and B→A at the same time; return the match id."""
    async with KindredClient(base_url, a) as ca, KindredClient(base_url, b) as cb:
        t0 = time.monotonic()
        try:
            ra, rb = await asyncio.gather(ca.like(b), cb.like(a))
        except Exception as e:
            results["errors"].append(f"Like {str(a)[:8]}x{str(b)[:8]}: {e}")
            return None
        results["timings"]["like"].append(time.monotonic() - t0)

        reported = {r.match.match_id for r in (ra, rb) if r.is_match and r.match}
        if not reported:
            results["errors"].append(f"Pair {str(a)[:8]}x{str(b)[:8]}: no side saw the match")
            return None
        if len(reported) > 1:
            results["duplicate_pairs"].append((a, b, reported))

        for client, other in ((ca, b), (cb, a)):
            seen = [m for m in await client.list_matches() if m.counterpart.user_id == other]
            if len(seen) != 1:
                results["duplicate_pairs"].append((a, b, {m.match_id for m in seen}))
        return next(iter(reported))


async def message_burst(
    base_url: str,
    match_id: uuid.UUID,
    a: uuid.UUID,
    b: uuid.UUID,
    burst: int,
    results: dict[str, Any],
) -> None:
    """Both users send ``burst`` messages concurrently, then the log is checked."""
    async with KindredClient(base_url, a) as ca, KindredClient(base_url, b) as cb:
        sends = [
            (ca if i % 2 == 0 else cb).send_message(match_id, f"load message {i}")
            for i in range(burst)
        ]
        t0 = time.monotonic()
        outcomes = await asyncio.gather(*sends, return_exceptions=True)
        results["timings"]["messages"].append(time.monotonic() - t0)
        failures = [o for o in outcomes if isinstance(o, Exception)]
        results["messages_sent"] += burst - len(failures)
        for f in failures:
            results["errors"].append(f"Message on {str(match_id)[:8]}: {f}")

        log = await ca.get_messages(match_id)
        seqs = [m.seq for m in log]
        stamps = [m.timestamp for m in log]
        if seqs != list(range(1, len(log) + 1)) or stamps != sorted(stamps):
            results["unordered_logs"].append(match_id)


async def run_load_test(base_url: str, pairs: int, burst: int) -> dict[str, Any]:
    print(f"\n{'='*60}")
    print(f"Kindred Load Test — {pairs} pairs, {burst} messages each")
    print(f"Target: {base_url}")
    print(f"{'='*60}\n")

    results: dict[str, Any] = {
        "pairs": 0,
        "matches": 0,
        "messages_sent": 0,
        "duplicate_pairs": [],
        "unordered_logs": [],
        "errors": [],
        "timings": {"like": [], "messages": []},
    }

    user_ids = await load_user_ids(pairs * 2)
    couples = list(zip(user_ids[0::2], user_ids[1::2]))
    results["pairs"] = len(couples)
    if not couples:
        print("  No users found; run scripts.seed_users first.")
        return results

    print(f"[1/2] Firing {len(couples)} simultaneous mutual likes...")
    match_ids = await asyncio.gather(
        *(mutual_like(base_url, a, b, results) for a, b in couples)
    )
    formed = [(m, a, b) for m, (a, b) in zip(match_ids, couples) if m is not None]
    results["matches"] = len(formed)
    print(f"  -> {len(formed)} matches formed\n")

    print(f"[2/2] Sending message bursts to {len(formed)} matches...")
    await asyncio.gather(
        *(message_burst(base_url, m, a, b, burst, results) for m, a, b in formed)
    )
    print(f"  -> {results['messages_sent']} messages sent\n")

    # Summary
    print(f"{'='*60}")
    print("LOAD TEST RESULTS")
    print(f"{'='*60}")
    print(f"Pairs:            {results['pairs']}")
    print(f"Matches formed:   {results['matches']}/{results['pairs']}")
    print(f"Duplicate pairs:  {len(results['duplicate_pairs'])}")
    print(f"Unordered logs:   {len(results['unordered_logs'])}")

    for phase, timings in results["timings"].items():
        if timings:
            print(f"\n{phase} latency:")
            print(f"  mean:   {statistics.mean(timings):.3f}s")
            print(f"  median: {statistics.median(timings):.3f}s")
            print(f"  p95:    {sorted(timings)[int(len(timings)*0.95)]:.3f}s")
            print(f"  max:    {max(timings):.3f}s")

    if results["errors"]:
        print(f"\nErrors ({len(results['errors'])}):")
        for e in results["errors"][:10]:
            print(f"  - {e}")

    return results


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Kindred load test")
    parser.add_argument("--pairs", type=int, default=DEFAULT_PAIRS)
    parser.add_argument("--burst", type=int, default=DEFAULT_BURST)
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    args = parser.parse_args()

    outcome = asyncio.run(run_load_test(args.base_url, args.pairs, args.burst))
    if outcome["duplicate_pairs"] or outcome["unordered_logs"]:
        sys.exit(1)
