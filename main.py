"""Entry point for the campaign milestone engine.

Usage:
    python main.py --campaign campaigns/lost_crown.yaml               # Check day 1
    python main.py --campaign campaigns/lost_crown.yaml --days 7      # Play a week
    python main.py --campaign ... --days 7 --dry-run                  # No narrator, no history
    python main.py --campaign ... --days 3 --save data/snapshot.json  # Keep the result
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from campaign.chat import format_check_results
from campaign.client import AIAgentClient
from gm.config import load_config
from gm.core import GameMasterSession
from gm.memory import CampaignLoadError, CampaignStore, GuidanceHistoryDB
from gm.narrator import NarrativeGenerator, Narrator
from milestones import SessionClock


def _setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s — %(name)s — %(levelname)s — %(message)s"

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=fmt, handlers=handlers)

    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)


def build_narrator(cfg: dict) -> NarrativeGenerator | None:
    backend = (cfg.get("guidance") or {}).get("backend", "anthropic")
    if backend == "anthropic":
        api_key = cfg["_secrets"]["anthropic_api_key"]
        if not api_key:
            logging.getLogger(__name__).warning("ANTHROPIC_API_KEY is not set; narration disabled")
            return None
        return Narrator(
            api_key=api_key,
            model=(cfg.get("llm") or {}).get("model", "claude-sonnet-4-20250514"),
            temperature=(cfg.get("llm") or {}).get("temperature", 0.8),
        )
    if backend == "ai_agent":
        agent_cfg = cfg.get("ai_agent") or {}
        return AIAgentClient(
            base_url=agent_cfg.get("base_url", "http://localhost:4001"),
            api_key=cfg["_secrets"]["ai_agent_api_key"],
            timeout=float(agent_cfg.get("timeout", 20)),
        )
    return None


def _echo_day(day: int, messages: list) -> None:
    click.echo(f"\n  [Day {day}]")
    if not messages:
        click.echo("  (no milestone news)")
    for message in messages:
        click.echo(f"  {message.sender}: {message.content}")
        for action in message.suggested_actions:
            click.echo(f"      - {action}")


async def _run(
    session: GameMasterSession,
    clock: SessionClock,
    days: int,
    guidance: bool,
) -> None:
    for index in range(days):
        if index:
            clock.advance()
        day = clock.current_day()
        messages = await session.daily_tick() if guidance else _check_only(session)
        # Narration trails the status changes; collect it before the next day starts.
        messages = messages + await session.drain()
        _echo_day(day, messages)


def _check_only(session: GameMasterSession) -> list:
    results = session.controller.advance_to(session.current_day)
    if any(r.was_completed for r in results):
        session.controller.activate_next_milestone()
    return format_check_results(results)


async def _main_async(
    cfg: dict,
    store: CampaignStore,
    start_day: int | None,
    days: int,
    guidance: bool,
    dry_run: bool,
    save_path: str | None,
) -> None:
    state = store.load()
    clock = SessionClock(start_day if start_day is not None else state.last_checked_day + 1)
    narrator = None if dry_run else build_narrator(cfg)

    root = Path(__file__).resolve().parent
    db_path = root / (cfg.get("storage") or {}).get("history_db", "data/history.db")

    try:
        if dry_run:
            session = GameMasterSession(state, config=cfg, narrator=narrator, clock=clock)
            await _run(session, clock, days, guidance)
        else:
            async with GuidanceHistoryDB(db_path) as db:
                session = GameMasterSession(state, config=cfg, narrator=narrator, clock=clock, history_db=db)
                await _run(session, clock, days, guidance)
    finally:
        if isinstance(narrator, AIAgentClient):
            await narrator.close()

    if save_path:
        target = store.save(session.state, save_path)
        click.echo(f"\n  Saved campaign snapshot to {target}")

    for milestone in session.state.milestones:
        click.echo(f"  {milestone.status:>9}  {milestone.title} (day {milestone.target_day})")


@click.command()
@click.option("--campaign", "campaign_path", type=click.Path(), required=True, help="Campaign YAML/JSON file")
@click.option("--days", type=int, default=1, show_default=True, help="Number of days to play")
@click.option("--start-day", type=int, default=None, help="First day to check (default: after last checked)")
@click.option("--guidance/--no-guidance", default=True, help="Request narrative guidance")
@click.option("--dry-run", is_flag=True, help="No narrator and no history database")
@click.option("--save", "save_path", type=click.Path(), default=None, help="Write the final state as JSON")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.option("--config-dir", type=click.Path(), default=None, help="Config directory")
def main(
    campaign_path: str,
    days: int,
    start_day: int | None,
    guidance: bool,
    dry_run: bool,
    save_path: str | None,
    verbose: bool,
    config_dir: str | None,
) -> None:
    """Run daily milestone checks for a tabletop campaign."""

    if days < 1:
        click.echo("--days must be at least 1.")
        sys.exit(1)

    try:
        cfg = load_config(config_dir)
    except FileNotFoundError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)

    log_file = (cfg.get("storage") or {}).get("log_file")
    _setup_logging(verbose=verbose, log_file=log_file)

    if dry_run:
        click.echo("DRY RUN: no narration requests, no history written.\n")

    try:
        asyncio.run(
            _main_async(cfg, CampaignStore(campaign_path), start_day, days, guidance, dry_run, save_path)
        )
    except CampaignLoadError as exc:
        click.echo(f"Could not load campaign: {exc}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
