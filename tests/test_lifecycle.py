from datetime import datetime

import discord

from animebot.models.common import format_progress
from animebot.utils.lifecycle import build_activity, status_index


def test_status_rotates_by_day_of_month():
    assert status_index(datetime(2024, 5, 2)) == 0
    assert status_index(datetime(2024, 5, 3)) == 1


def test_activities():
    watching = build_activity(0)
    assert watching.type is discord.ActivityType.watching
    assert watching.name == "new anime episodes..."
    assert build_activity(1).name == "manga updates..."


def test_format_progress():
    assert format_progress(5.0) == "5"
    assert format_progress(10.5) == "10.5"
    assert format_progress(None) == "0"
