"""NPC Agency — dev launcher. Runs a simulation from the data dir or serves the API."""

import argparse
import json
import os
from pathlib import Path

from npc_agency.config import (
    build_registry,
    configure_logging,
    get_config,
    load_env,
    resolve_data_dir,
)
from npc_agency.engine import Engine
from npc_agency.game_date import add_hours
from npc_agency.storage import Storage

load_env()

HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "13015"))


def simulate(data_dir: Path, ticks: int, hours: int | None) -> None:
    """Run `ticks` ticks over npcs.json / story-state.json and print what happened."""
    storage = Storage(data_dir)
    config = get_config(data_dir)
    hours_per_tick = hours or config["hours_per_tick"]

    engine = Engine(
        registry=build_registry(config),
        storage=storage,
        persist_timed_actions=config["persist_timed_actions"],
    )
    npcs = storage.get_npcs()
    story_state = storage.load_story_state()
    if not npcs:
        print(f"No NPCs in {data_dir / 'npcs.json'}")
        return

    # Dates have day resolution, so count hours from the starting date.
    start_date = story_state.game_date
    elapsed = 0
    for _ in range(ticks):
        date = story_state.game_date
        print(f"── {date or 'undated'} ──")
        result = engine.run_tick(npcs, story_state, date)
        for r in result.agency_results:
            print(f"  [{r.status}] {r.npc_id}: {r.action or '-'} {r.message}")
        for m in result.trigger_messages:
            print(f"  [message] {m.from_npc} → {m.to}: {m.subject}")

        for c in engine.advance_timed_actions(story_state, hours_per_tick):
            print(f"  [timed] {c.npc_id}: {c.message}")
        elapsed += hours_per_tick
        story_state.game_date = add_hours(start_date, elapsed)

    storage.save_npcs(npcs)
    storage.save_story_state(story_state)
    print(json.dumps(story_state.flags, indent=2))


def main():
    parser = argparse.ArgumentParser(description="NPC Agency dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: $DATA_DIR or ./data)")
    parser.add_argument("--log-level", default=None,
                        help="Logging level (default: $LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    sim = sub.add_parser("simulate", help="Run ticks against the stored NPCs")
    sim.add_argument("--ticks", type=int, default=1)
    sim.add_argument("--hours", type=int, default=None,
                     help="Hours per tick (default: config hours_per_tick)")

    sub.add_parser("serve", help="Serve the HTTP API")
    args = parser.parse_args()

    configure_logging(args.log_level)
    data_dir = resolve_data_dir(args.data_dir)

    if args.command == "simulate":
        simulate(data_dir, args.ticks, args.hours)
    elif args.command == "serve":
        import uvicorn

        os.environ["DATA_DIR"] = str(data_dir.resolve())
        uvicorn.run("npc_agency.app:create_app", factory=True, host=HOST, port=PORT)


if __name__ == "__main__":
    main()
