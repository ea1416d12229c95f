"""Story Forge — terminal launcher. Plays rounds of a session against the turn core."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from story_forge.config import build_llm, get_config
from story_forge.dice import format_dice_roll, roll_dice_set
from story_forge.engine import TurnEngine, TurnError
from story_forge.models import Session, Turn
from story_forge.pipeline import (
    end_turn,
    generate_scene_suggestions,
    propose_actions,
    recent_event_summaries,
    resolve_action,
)
from story_forge.storage import Storage

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

DEFAULT_DATA_DIR = ROOT / "data"
CHECK_TYPES = (
    "strength", "dexterity", "constitution", "intelligence", "wisdom", "charisma",
    "attack", "save", "skill",
)


def _ask(label: str, default: str, choices: tuple[str, ...] | None = None) -> str:
    while True:
        answer = input(f"  {label} [{default}]: ").strip() or default
        if choices is None or answer in choices:
            return answer
        print(f"  choose one of: {', '.join(choices)}")


def _ask_int(label: str, default: int) -> int:
    while True:
        answer = _ask(label, str(default))
        try:
            value = int(answer)
        except ValueError:
            value = 0
        if value > 0:
            return value
        print("  enter a positive number")


def finish_turn(engine: TurnEngine, world_state: str, resolved: list) -> Turn | None:
    """End the turn, or report why it cannot end yet and keep the session unchanged."""
    try:
        turn = end_turn(engine, world_state, resolved)
    except TurnError as e:
        print(f"! turn not ended: {e}")
        return None
    print(f"\n--- Turn {turn.turn_number} ended ---")
    return turn


async def play(storage: Storage, session: Session, config: dict, default_dc: int) -> None:
    llm = build_llm(config)
    world = storage.get_world(session.world_id)
    characters = storage.get_characters_by_world(session.world_id)
    by_id = {c.id: c for c in characters}
    engine = TurnEngine(session, storage)
    templates = config["prompts"]

    if not llm.is_configured():
        print("LLM not configured; characters will use placeholder actions.")

    while True:
        scene = input(f"\nTurn {engine.session.current_turn + 1} scene (? for ideas, q to quit): ").strip()
        if scene.lower() in ("q", "quit"):
            return
        if scene == "?":
            party = [by_id[c] for c in engine.session.characters if c in by_id]
            suggestions = await generate_scene_suggestions(
                world, party, recent_event_summaries(engine.session, config["recent_event_count"]),
                engine.session.current_turn, llm, templates,
            )
            for s in suggestions:
                print(f"  [{s.type}] {s.title}: {s.content}")
            if not suggestions:
                print("  no suggestions available")
            continue

        proposals = await propose_actions(
            engine, characters, world, scene, llm,
            recent_events=recent_event_summaries(engine.session, config["recent_event_count"]),
            concurrent=config["concurrent_proposals"],
            templates=templates,
            default_scene=config["default_scene"],
        )
        for failure in proposals.failures:
            print(f"! no proposal from {failure.character_name}: {failure.error}")

        resolved = []
        for action in engine.pending_actions:
            print(f"\n{action.character_name}: {action.proposed_action}")
            if action.ai_reasoning:
                print(f"  ({action.ai_reasoning})")
            check_type = _ask("check", "dexterity", CHECK_TYPES)
            skill_name = _ask("skill", "Perception") if check_type == "skill" else None
            difficulty = _ask_int("DC", default_dc)
            try:
                r = await resolve_action(
                    engine, action, by_id[action.character_id], check_type, difficulty,
                    roll_dice_set("d20"), llm,
                    skill_name=skill_name, world=world, templates=templates,
                )
            except TurnError as e:
                print(f"! {e}")
                continue
            verdict = "success" if r.outcome.success else "failure"
            print(f"  {format_dice_roll(r.check.dice_roll)} vs DC {difficulty}: {verdict}")
            print(f"  {r.narration}")
            resolved.append(r)

        finish_turn(engine, scene or config["default_scene"], resolved)


def main():
    parser = argparse.ArgumentParser(description="Story Forge terminal launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Clean and create demo world, party and session")
    parser.add_argument("--session", default=None,
                        help="Session id to play (default: most recently updated)")
    parser.add_argument("--dc", type=int, default=12,
                        help="Default difficulty offered for checks")
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    data_dir = args.data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage = Storage(data_dir)
    config = get_config(data_dir)

    if args.demo:
        from story_forge.demo import create_demo_data
        session = create_demo_data(storage)
        print(f"Created demo session {session.id}")
    elif args.session:
        session = storage.get_session(args.session)
    else:
        sessions = [s for w in storage.list_worlds() for s in storage.get_sessions_by_world(w.id)]
        session = max(sessions, key=lambda s: s.updated_at, default=None)

    if session is None:
        print("No session found. Run with --demo to create one.")
        sys.exit(1)

    try:
        asyncio.run(play(storage, session, config, args.dc))
    except (KeyboardInterrupt, EOFError):
        print("\nBye.")


if __name__ == "__main__":
    main()
