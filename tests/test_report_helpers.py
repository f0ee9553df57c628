import os
import sys
from datetime import datetime, timezone

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import discord

from cogs.report_helpers import (
    build_mission_report_embed,
    dev_mode_warning,
    difficulty_text,
    embed_color,
    formatted_timestamp,
    prevent_discord_formatting,
    report_image_paths,
    sanitize_filename_part,
)
from ocr_processing import (
    AnalysisResult, OperationStatus, GREEN, RED, NOT_COMPLETED,
    REASON_MISSING_DIFFICULTY, REASON_MISSION_FAILED,
)


def make_result(status=OperationStatus.COMPLETED, slots=None, difficulty=9,
                reasons=(), waived=(), dev_mode=False, message="✅ Operation Completed: All missions successful."):
    return AnalysisResult(
        status=status,
        message=message,
        difficulty_level=difficulty,
        slot_classifications=slots if slots is not None else {"1st": GREEN, "2nd": GREEN, "3rd": GREEN},
        annotations=(),
        anchors={},
        failure_reasons=reasons,
        waived_reasons=waived,
        dev_mode=dev_mode,
    )


def test_difficulty_text():
    assert difficulty_text(make_result(difficulty=8)) == "Difficulty: 8"
    assert difficulty_text(make_result(difficulty=None)) == "Difficulty: Not Detected"


def test_embed_color_follows_status():
    assert embed_color(make_result()) == discord.Color.green()
    assert embed_color(make_result(status=OperationStatus.PARTIAL)) == discord.Color.orange()
    assert embed_color(make_result(status=OperationStatus.FAILED)) == discord.Color.red()
    waived = make_result(reasons=(REASON_MISSING_DIFFICULTY,), waived=(REASON_MISSING_DIFFICULTY,), dev_mode=True)
    assert embed_color(waived) == discord.Color.gold()


def test_dev_mode_warning_lists_reasons():
    result = make_result(
        slots={"1st": GREEN, "2nd": NOT_COMPLETED},
        difficulty=None,
        reasons=(REASON_MISSING_DIFFICULTY,),
        waived=(REASON_MISSING_DIFFICULTY,),
        dev_mode=True,
    )
    warning = dev_mode_warning(result)
    assert "would normally fail" in warning
    assert f"- {REASON_MISSING_DIFFICULTY}" in warning
    assert "- some missions were incomplete" in warning


def test_dev_mode_warning_empty_outside_dev_mode():
    result = make_result(status=OperationStatus.FAILED, slots={"1st": RED}, reasons=(REASON_MISSION_FAILED,))
    assert dev_mode_warning(result) == ""
    assert dev_mode_warning(make_result(dev_mode=True)) == ""


def test_report_embed_fields():
    result = make_result(
        status=OperationStatus.FAILED,
        slots={"1st": GREEN, "2nd": RED, "3rd": GREEN},
        reasons=(REASON_MISSION_FAILED,),
        message=f"❌ Operation Failed: {REASON_MISSION_FAILED}",
    )
    embed = build_mission_report_embed(
        result,
        42,
        submitter="<@1>",
        participants=["<@1>", "<@2>"],
        operation="Operation Swift Disaster",
        planet="Malevelon Creek",
        submitted_at=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        image_url="https://cdn.example.com/shot.png",
    )
    assert embed.title == "Major Initiative Report - Report #42"
    assert "**Missions:** 2" in embed.description
    assert "**Difficulty: 9**" in embed.description
    assert "Malevelon Creek" in embed.description
    fields = {f.name: f.value for f in embed.fields}
    assert fields["Participants"] == "<@1>\n<@2>"
    assert fields["Operation Status"].startswith("❌ Operation Failed")
    assert embed.image.url == "https://cdn.example.com/shot.png"
    assert embed.color == discord.Color.red()


def test_filename_helpers():
    assert sanitize_filename_part('bad/na:me?') == "badname"
    assert sanitize_filename_part("") == "unknown"
    assert prevent_discord_formatting("<#123>") == "<\u200B#123>"
    stamp = formatted_timestamp(datetime(2024, 3, 1, 9, 5, 7))
    assert stamp == "03012024 09-05-07"
    raw, debug = report_image_paths("Diver|One", datetime(2024, 3, 1, 9, 5, 7))
    assert raw.endswith("03012024 09-05-07 - [ DiverOne ] - Raw.png")
    assert debug.endswith("03012024 09-05-07 - [ DiverOne ] - Debug.png")
