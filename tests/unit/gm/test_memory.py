"""Tests for campaign snapshots and the history database."""

import asyncio
import json
from pathlib import Path

import pytest

from campaign.models import CheckResult, GMAction
from gm.guidance import GuidanceRecord
from gm.memory import CampaignLoadError, CampaignStore, GuidanceHistoryDB

SAMPLE = Path(__file__).resolve().parents[3] / "campaigns" / "lost_crown.yaml"


def test_load_sample_campaign():
    state = CampaignStore(SAMPLE).load()
    assert state.title == "The Lost Crown of Varn"
    assert [m.id for m in state.milestones] == ["ms-crossing", "ms-archive"]
    assert state.milestone("ms-archive").completion_mode == "partial"
    assert state.party_inventory["i-herb"] == 2
    assert state.defeated_enemies == {"m-goblin": 1}


def test_load_flat_json_campaign(tmp_path):
    path = tmp_path / "camp.json"
    path.write_text(json.dumps({"title": "Flat", "milestones": [{"id": "m", "title": "M"}]}))
    state = CampaignStore(path).load()
    assert state.title == "Flat"
    assert state.milestone("m").status == "pending"


def test_load_errors(tmp_path):
    with pytest.raises(CampaignLoadError):
        CampaignStore(tmp_path / "missing.yaml").load()

    broken = tmp_path / "broken.yaml"
    broken.write_text("milestones: [unclosed")
    with pytest.raises(CampaignLoadError):
        CampaignStore(broken).load()

    listing = tmp_path / "list.yaml"
    listing.write_text("- just\n- a list\n")
    with pytest.raises(CampaignLoadError):
        CampaignStore(listing).load()


def test_save_then_load_keeps_state(tmp_path):
    state = CampaignStore(SAMPLE).load().with_quest_status("q-archive", "completed")
    target = CampaignStore(SAMPLE).save(state, tmp_path / "out" / "snapshot.json")
    assert target.exists()
    again = CampaignStore(target).load()
    assert again.quest_statuses["q-archive"] == "completed"
    assert again.milestones == state.milestones


def test_history_db_round_trip(tmp_path):
    results = [
        CheckResult("m1", True, False, False, GMAction(type="announce", message="Done!")),
        CheckResult("m2", False, True, True, GMAction(type="gameover", message="Over.")),
        CheckResult("m3", False, False, False),
    ]

    async def go():
        async with GuidanceHistoryDB(tmp_path / "history.db") as db:
            assert await db.get_last_guidance_day() == 0
            count = await db.log_check_results(4, results)
            await db.log_guidance(GuidanceRecord(3, "m1", "normal", "moderate", "Psst."))
            await db.log_guidance(GuidanceRecord(5, "m1", "overdue", "direct", "Hurry!", fallback=True))
            return (
                count,
                await db.get_check_results(),
                await db.get_check_results(milestone_id="m2"),
                await db.get_recent_guidance(),
                await db.get_last_guidance_day(),
            )

    count, all_rows, m2_rows, guidance, last_day = asyncio.run(go())
    assert count == 3
    assert len(all_rows) == 3
    assert m2_rows[0]["should_game_over"] == 1
    assert m2_rows[0]["action_type"] == "gameover"
    assert [g["message"] for g in guidance] == ["Hurry!", "Psst."]
    # fallback messages do not count as delivered guidance
    assert last_day == 3
