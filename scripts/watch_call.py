#!/usr/bin/env python3
"""Follow a live call's script session from the terminal.

Mounts a live call view for one call id and prints every state change
until interrupted.

Usage:
    python scripts/watch_call.py CA123                  # follow call CA123
    python scripts/watch_call.py CA123 --json           # print full snapshots as JSON
    python scripts/watch_call.py CA123 --simulated      # skip rehydration on connect
    python scripts/watch_call.py CA123 --log-level DEBUG
"""

import argparse
import asyncio
import json
import logging

from dotenv import load_dotenv

from livecall.config import Settings, validate_config
from livecall.derived import effective_segment_options
from livecall.session import CallSession
from livecall.view import LiveCallView

logger = logging.getLogger("watch_call")


def format_change(session: CallSession, changed: set) -> str:
    """One human-readable line summarising a state change."""
    station = session.current_station
    parts = [f"[{session.call_id}] station={station.value}"]
    if not station.is_final:
        parts.append(f"next={station.next.value}")
    if session.completed_stations:
        parts.append("done=" + ",".join(s.value for s in session.completed_stations))
    if session.detected_segment:
        parts.append(f"segment={session.detected_segment.value}({session.segment_confidence})")
    alternatives = [
        o for o in effective_segment_options(session) if o.segment != session.detected_segment
    ]
    if alternatives:
        parts.append("alts=" + ",".join(f"{o.segment.value}:{o.confidence}" for o in alternatives))
    info = {k: v for k, v in session.captured_info.to_dict().items() if v is not None}
    if info:
        parts.append("info=" + ",".join(f"{k}={v}" for k, v in info.items()))
    if session.is_qualified is not None:
        parts.append(f"qualified={session.is_qualified}")
    if session.recommended_destination:
        parts.append(f"recommended={session.recommended_destination.value}")
    if session.selected_destination:
        parts.append(f"selected={session.selected_destination.value}")
    if session.detected_jobs:
        matched = sum(1 for j in session.detected_jobs if j.matched)
        parts.append(f"jobs={matched}/{len(session.detected_jobs)}")
    parts.append("changed=" + ",".join(sorted(changed)))
    return " ".join(parts)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Follow a live call script session")
    parser.add_argument("call_id", help="Call id (Twilio call SID) to follow")
    parser.add_argument("--json", action="store_true", help="Print full snapshots as JSON")
    parser.add_argument("--simulated", action="store_true", help="Skip rehydration on connect")
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL")
    return parser


async def watch(call_id: str, settings: Settings, as_json: bool = False):
    view = LiveCallView.from_settings(call_id, settings)

    def on_change(session: CallSession, changed: set):
        if as_json:
            print(json.dumps(session.to_dict()), flush=True)
        else:
            print(format_change(session, changed), flush=True)

    view.subscribe(on_change)
    async with view:
        task = view.supervisor.start()
        await task
        for notice in view.notices:
            logger.info("Notice: %s", notice)


def main():
    load_dotenv()
    args = build_parser().parse_args()
    validate_config()

    settings = Settings.from_env()
    if args.simulated:
        settings.simulated = True
    level = (args.log_level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        asyncio.run(watch(args.call_id, settings, as_json=args.json))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
