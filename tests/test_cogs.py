import os
import importlib
import inspect
import logging
import sys
from io import BytesIO
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import numpy as np
import pytest
import discord
from discord.ext import commands
from PIL import Image

from ocr_processing import OperationStatus
from text_detection import DetectionError, TextAnnotation

logging.basicConfig(level=logging.INFO)

COG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "cogs")


def get_cog_modules():
    """Yield module names for each cog file."""
    for filename in os.listdir(COG_DIR):
        if filename.endswith("_cog.py"):
            yield filename[:-3]


@pytest.mark.asyncio
async def test_cogs_load_and_have_async_commands():
    for module_name in get_cog_modules():
        intents = discord.Intents.none()
        bot = commands.Bot(command_prefix="!", intents=intents)
        module = importlib.import_module(f"cogs.{module_name}")
        await module.setup(bot)
        assert bot.cogs, f"{module_name} failed to load"
        cog = next(iter(bot.cogs.values()))
        for command in cog.get_commands():
            logging.info("Testing %s.%s", module_name, command.name)
            assert inspect.iscoroutinefunction(command.callback)
        for app_command in cog.get_app_commands():
            logging.info("Testing /%s", app_command.name)
            assert inspect.iscoroutinefunction(app_command.callback)
        await bot.close()


def screenshot_bytes():
    image = np.zeros((100, 200, 3), dtype=np.uint8)
    for x in (16, 66, 116):
        image[11:20, x - 4:x + 5] = (20, 200, 30)
    buf = BytesIO()
    Image.fromarray(image).save(buf, format="PNG")
    return buf.getvalue()


class StubDetector:
    def detect(self, image_bytes):
        return [
            TextAnnotation("operation 8 |", ((0, 60), (80, 60), (80, 70), (0, 70))),
            TextAnnotation("1st", ((10, 10), (30, 10), (30, 20), (10, 20))),
            TextAnnotation("2nd", ((60, 10), (80, 10), (80, 20), (60, 20))),
            TextAnnotation("3rd", ((110, 10), (130, 10), (130, 20), (110, 20))),
        ]


def make_interaction():
    interaction = MagicMock()
    interaction.user = SimpleNamespace(id=42, name="diver", display_name="Diver", mention="<@42>")
    interaction.channel_id = 100
    interaction.response.defer = AsyncMock()
    interaction.followup.send = AsyncMock()
    interaction.edit_original_response = AsyncMock()
    return interaction


def make_attachment(filename="shot.png", size=1024):
    attachment = MagicMock()
    attachment.filename = filename
    attachment.size = size
    attachment.url = "https://cdn.example.com/shot.png"
    attachment.read = AsyncMock(return_value=screenshot_bytes())
    return attachment


@pytest.fixture
def operation_cog(monkeypatch, tmp_path):
    from cogs import operation_cog

    monkeypatch.setattr(operation_cog, "get_task_settings", AsyncMock(return_value={
        "min_difficulty_level": 7,
        "default_operation": "Operation Test",
        "default_planet": "Hellmire",
    }))
    monkeypatch.setattr(operation_cog, "get_next_mission_number", AsyncMock(return_value=5))
    monkeypatch.setattr(operation_cog, "increment_submission_count", AsyncMock(return_value=1))
    monkeypatch.setattr(operation_cog, "insert_operation_report", AsyncMock(return_value=True))
    monkeypatch.setattr(operation_cog, "report_image_paths", lambda user: (
        str(tmp_path / "raw.png"), str(tmp_path / "debug.png")
    ))
    bot = MagicMock()
    return operation_cog, operation_cog.OperationCog(bot, detector=StubDetector())


@pytest.mark.asyncio
async def test_analyze_posts_report_embed(operation_cog):
    module, cog = operation_cog
    interaction = make_interaction()
    await cog.analyze.callback(cog, interaction, make_attachment())

    interaction.edit_original_response.assert_awaited_once()
    embed = interaction.edit_original_response.call_args.kwargs["embed"]
    assert embed.title == "Major Initiative Report - Report #5"
    assert "**Missions:** 3" in embed.description
    assert "**Difficulty: 8**" in embed.description
    report_args = module.insert_operation_report.call_args.args
    assert report_args[0] == 5
    assert report_args[1].status is OperationStatus.COMPLETED
    module.increment_submission_count.assert_awaited_once_with(42)


@pytest.mark.asyncio
async def test_analyze_rejects_bad_extension(operation_cog):
    module, cog = operation_cog
    interaction = make_interaction()
    await cog.analyze.callback(cog, interaction, make_attachment(filename="shot.gif"))
    interaction.followup.send.assert_awaited_once()
    assert "Invalid file type" in interaction.followup.send.call_args.args[0]
    module.get_next_mission_number.assert_not_awaited()


@pytest.mark.asyncio
async def test_detection_failure_is_reported(operation_cog, monkeypatch):
    module, cog = operation_cog

    class DownDetector:
        def detect(self, image_bytes):
            raise DetectionError("quota exceeded")

    cog.detector = DownDetector()
    monkeypatch.setattr(module, "log_to_monitor_channel", AsyncMock())
    interaction = make_interaction()
    await cog.analyze.callback(cog, interaction, make_attachment())
    assert "unavailable" in interaction.followup.send.call_args.args[0]
    module.insert_operation_report.assert_not_awaited()


@pytest.mark.asyncio
async def test_submit_operation_posts_to_results_channel(operation_cog, monkeypatch):
    module, cog = operation_cog
    monkeypatch.setattr(module, "operation_command_channel_id", None)
    monkeypatch.setattr(module, "operation_results_channel_id", 200)
    results_channel = MagicMock()
    results_channel.send = AsyncMock()
    cog.bot.get_channel.return_value = results_channel

    teammate = SimpleNamespace(id=7, mention="<@7>")
    interaction = make_interaction()
    await cog.submit_operation.callback(cog, interaction, make_attachment(), teammate, None, None)

    results_channel.send.assert_awaited_once()
    embed = results_channel.send.call_args.kwargs["embed"]
    fields = {f.name: f.value for f in embed.fields}
    assert fields["Participants"] == "<@42>\n<@7>"
    assert module.insert_operation_report.call_args.args[3] == [42, 7]
    assert "successfully submitted" in interaction.followup.send.call_args.args[0]


@pytest.mark.asyncio
async def test_submit_operation_restricted_to_command_channel(operation_cog, monkeypatch):
    module, cog = operation_cog
    monkeypatch.setattr(module, "operation_command_channel_id", 999)
    interaction = make_interaction()
    await cog.submit_operation.callback(cog, interaction, make_attachment(), None, None, None)
    assert "<#999>" in interaction.followup.send.call_args.args[0]
    module.get_task_settings.assert_not_awaited()
