"""
Manual matching trigger — runs the matching job for one user from the command line.

Usage:
    python scripts/run_matching.py <user_id>

Useful for testing the matching engine without going through the API.
"""

import asyncio
import json
import sys
import uuid

from app.matching_engine.engine import MatchingError, matching_engine


async def main(user_id: uuid.UUID):
    """Run the matching job and print the resulting matches."""
    print(f"Computing matches for {user_id}...")
    try:
        summaries = await matching_engine.compute_for_user(user_id)
    except MatchingError as exc:
        print(f"Cannot compute matches: {exc}")
        sys.exit(1)

    print("\n=== Matches ===")
    print(json.dumps(summaries, indent=2, default=str))
    print(f"\nTotal matches: {len(summaries)}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    asyncio.run(main(uuid.UUID(sys.argv[1])))
