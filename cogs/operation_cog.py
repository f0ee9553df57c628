import discord
from discord import app_commands
from discord.ext import commands
import logging
import asyncio
import os
import traceback
from datetime import datetime
from zoneinfo import ZoneInfo

from .report_helpers import (
    REPORT_TIMEZONE,
    build_mission_report_embed,
    report_image_paths,
)
from database import (
    get_task_settings,
    update_task_settings,
    get_next_mission_number,
    increment_submission_count,
    insert_operation_report,
)
from config import (
    ALLOWED_EXTENSIONS,
    MAX_FILE_SIZE,
    DEV_MODE,
    operation_command_channel_id,
    operation_results_channel_id,
)
from ocr_processing import analyze_image, AnalysisError
from text_detection import DetectionError, get_text_detector
from utils import log_to_monitor_channel

logger = logging.getLogger(__name__)


def _save_bytes(path: str, data: bytes):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write(data)

def validate_attachment(image: discord.Attachment) -> str | None:
    """Returns an error message for a bad upload, or None if it is usable."""
    if not any(image.filename.lower().endswith(ext) for ext in ALLOWED_EXTENSIONS):
        return "Invalid file type. Only PNG and JPG are allowed."
    if image.size > MAX_FILE_SIZE:
        return f"Image is too large. The limit is {MAX_FILE_SIZE // (1024 * 1024)} MB."
    return None


class OperationCog(commands.Cog):
    """Analyzes operation summary screenshots and posts Major Initiative reports."""

    def __init__(self, bot, detector=None):
        self.bot = bot
        self.detector = detector or get_text_detector()

    async def run_analysis(self, interaction: discord.Interaction, image: discord.Attachment, user_label: str):
        """
        Download, store and analyze one screenshot. Replies to the user and
        returns None on failure; returns (result, settings, raw_path) otherwise.
        """
        error = validate_attachment(image)
        if error:
            logger.warning(f"Rejected upload '{image.filename}' from {interaction.user}: {error}")
            await interaction.followup.send(error, ephemeral=True)
            return None

        img_bytes = await image.read()
        logger.info(f"Received image '{image.filename}' ({image.size} bytes) from user {interaction.user.id}.")

        # Fresh per submission so threshold changes apply immediately
        settings = await get_task_settings()
        raw_path, debug_path = report_image_paths(user_label)
        try:
            await asyncio.to_thread(_save_bytes, raw_path, img_bytes)
            logger.info(f"Raw image saved: {raw_path}")
        except OSError as e:
            logger.warning(f"Failed to save raw image {raw_path}: {e}")
            raw_path = None

        try:
            result = await asyncio.to_thread(
                analyze_image,
                img_bytes,
                self.detector,
                settings["min_difficulty_level"],
                DEV_MODE,
                debug_path if DEV_MODE else None,
            )
        except DetectionError as e:
            logger.error(f"Text detection failed for {interaction.user}: {e}")
            await log_to_monitor_channel(self.bot, f"Text detection failed: {e}", logging.ERROR)
            await interaction.followup.send(
                "The text detection service is unavailable right now. Please try again later.",
                ephemeral=True
            )
            return None
        except AnalysisError as e:
            logger.warning(f"Could not analyze image from {interaction.user}: {e}")
            await interaction.followup.send("That file could not be read as an image.", ephemeral=True)
            return None

        logger.info(f"OCR result for {interaction.user}: {result.status.value} - {result.message}")
        return result, settings, raw_path

    async def record_report(self, interaction: discord.Interaction, result, settings, participant_ids, raw_path):
        mission_number = await get_next_mission_number()
        logger.info(f"Assigned mission number {mission_number} for {interaction.user}")
        submissions = await increment_submission_count(interaction.user.id)
        if submissions is not None:
            logger.info(f"{interaction.user} has submitted {submissions} reports.")
        await insert_operation_report(
            mission_number,
            result,
            interaction.user.id,
            participant_ids,
            settings["default_operation"],
            settings["default_planet"],
            image_path=raw_path,
        )
        return mission_number

    @app_commands.command(name="analyze", description="Analyze an uploaded mission image.")
    @app_commands.describe(image="Upload the mission image")
    async def analyze(self, interaction: discord.Interaction, image: discord.Attachment):
        await interaction.response.defer()
        try:
            user = getattr(interaction.user, "display_name", None) or interaction.user.name
            analysis = await self.run_analysis(interaction, image, user)
            if analysis is None:
                return
            result, settings, raw_path = analysis
            mission_number = await self.record_report(interaction, result, settings, [interaction.user.id], raw_path)
            embed = build_mission_report_embed(
                result,
                mission_number,
                submitter=user,
                participants=[user],
                operation=settings["default_operation"],
                planet=settings["default_planet"],
                submitted_at=datetime.now(ZoneInfo(REPORT_TIMEZONE)),
                image_url=image.url,
            )
            await interaction.edit_original_response(embed=embed)
        except Exception as e:
            logger.error(f"analyze command failed for {interaction.user}: {e}")
            logger.error(''.join(traceback.format_tb(e.__traceback__)))
            await interaction.followup.send("An error occurred while processing your request.", ephemeral=True)

    @app_commands.command(name="submit_operation", description="Logs Operations for Major Initiative")
    @app_commands.describe(
        image="Submit a complete operation page from HD2",
        user_2="Add 2nd Helldiver to your report",
        user_3="Add 3rd Helldiver to your report",
        user_4="Add 4th Helldiver to your report",
    )
    async def submit_operation(
        self,
        interaction: discord.Interaction,
        image: discord.Attachment,
        user_2: discord.User | None = None,
        user_3: discord.User | None = None,
        user_4: discord.User | None = None,
    ):
        await interaction.response.defer(ephemeral=True)

        if operation_command_channel_id and interaction.channel_id != operation_command_channel_id:
            await interaction.followup.send(
                f"❌ This command can only be used in <#{operation_command_channel_id}>.",
                ephemeral=True
            )
            return

        try:
            participants = [interaction.user] + [u for u in (user_2, user_3, user_4) if u is not None]
            analysis = await self.run_analysis(interaction, image, str(interaction.user))
            if analysis is None:
                return
            result, settings, raw_path = analysis
            mission_number = await self.record_report(
                interaction, result, settings, [p.id for p in participants], raw_path
            )
            embed = build_mission_report_embed(
                result,
                mission_number,
                submitter=interaction.user.mention,
                participants=[p.mention for p in participants],
                operation=settings["default_operation"],
                planet=settings["default_planet"],
                submitted_at=datetime.now(ZoneInfo(REPORT_TIMEZONE)),
                image_url=image.url,
            )

            result_channel = self.bot.get_channel(operation_results_channel_id) if operation_results_channel_id else None
            if result_channel is None:
                logger.error(f"Result channel with ID {operation_results_channel_id} not found.")
                await interaction.followup.send("An error occurred while posting the report.", ephemeral=True)
                return
            await result_channel.send(embed=embed)
            await interaction.followup.send("✅ Operation report successfully submitted!", ephemeral=True)
        except Exception as e:
            logger.error(f"submit_operation failed for {interaction.user}: {e}")
            logger.error(''.join(traceback.format_tb(e.__traceback__)))
            await interaction.followup.send("An error occurred while processing your request.", ephemeral=True)

    @commands.command(name="set_min_difficulty")
    @commands.has_permissions(administrator=True)
    async def set_min_difficulty(self, ctx: commands.Context, level: int):
        """Admin-only: change the minimum difficulty accepted for reports."""
        if level < 1:
            await ctx.reply("Difficulty must be at least 1.")
            return
        if await update_task_settings(min_difficulty_level=level):
            await ctx.reply(f"Minimum difficulty set to {level}.")
        else:
            await ctx.reply("Failed to update the minimum difficulty. Check logs.")

async def setup(bot):
    await bot.add_cog(OperationCog(bot))
