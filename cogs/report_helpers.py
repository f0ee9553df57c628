import os
import re
import discord
from datetime import datetime
from zoneinfo import ZoneInfo

from config import IMAGE_SUBMITTED_DIR, IMAGE_DEBUG_DIR
from ocr_processing import OperationStatus

REPORT_TIMEZONE = "America/New_York"

def prevent_discord_formatting(name: str) -> str:
    if not name:
        return ""
    return name.replace('<#', '<\u200B#').replace('<@&', '<\u200B@&')

def sanitize_filename_part(name: str) -> str:
    if not name:
        return "unknown"
    name = re.sub(r'[/\\?%*:|"<>]', '', name).strip()
    return name or "unknown"

def formatted_timestamp(now: datetime | None = None) -> str:
    """MMDDYYYY HH-MM-SS in Eastern time, safe for file names."""
    now = now or datetime.now(ZoneInfo(REPORT_TIMEZONE))
    return now.strftime("%m%d%Y %H-%M-%S")

def report_image_paths(user_label: str, now: datetime | None = None) -> tuple[str, str]:
    stamp = formatted_timestamp(now)
    user = sanitize_filename_part(user_label)
    raw_path = os.path.join(IMAGE_SUBMITTED_DIR, f"{stamp} - [ {user} ] - Raw.png")
    debug_path = os.path.join(IMAGE_DEBUG_DIR, f"{stamp} - [ {user} ] - Debug.png")
    return raw_path, debug_path

def difficulty_text(result) -> str:
    if result.difficulty_level is None:
        return "Difficulty: Not Detected"
    return f"Difficulty: {result.difficulty_level}"

def embed_color(result) -> discord.Color:
    if result.status is OperationStatus.FAILED:
        return discord.Color.red()
    if result.status is OperationStatus.PARTIAL:
        return discord.Color.orange()
    if result.waived_reasons:
        return discord.Color.gold()
    return discord.Color.green()

def dev_mode_warning(result) -> str:
    """
    Lists what would have failed the report with dev mode off. Empty when
    dev mode is off or nothing would have failed.
    """
    if not result.dev_mode:
        return ""
    reasons = list(result.failure_reasons)
    if result.has_not_completed:
        reasons.append("some missions were incomplete")
    if not reasons:
        return ""
    return (
        "\n\n⚠️ **DEV_MODE is active!** This operation would normally fail for the following reasons:\n- "
        + "\n- ".join(reasons)
    )

def build_mission_report_embed(
    result,
    mission_number: int,
    submitter: str,
    participants: list,
    operation: str,
    planet: str,
    submitted_at: datetime | None = None,
    image_url: str | None = None,
) -> discord.Embed:
    submitted_at = submitted_at or datetime.now(ZoneInfo(REPORT_TIMEZONE))
    description = (
        f"**Submitted By:** {prevent_discord_formatting(submitter)}\n"
        f"**Date Submitted:** {discord.utils.format_dt(submitted_at, style='F')}\n\n"
        f"**Operation Name:** {operation}\n"
        f"**Planet:** {planet}\n"
        f"**{difficulty_text(result)}**\n"
        f"**Missions:** {result.mission_count}"
    )
    embed = discord.Embed(
        title=f"Major Initiative Report - Report #{mission_number}",
        description=description,
        color=embed_color(result)
    )
    embed.add_field(
        name="Participants",
        value="\n".join(prevent_discord_formatting(p) for p in participants) or "N/A",
        inline=False
    )
    status = result.message + dev_mode_warning(result)
    # Embed field values are capped at 1024 characters
    embed.add_field(name="Operation Status", value=status[:1024], inline=False)
    if image_url:
        embed.set_image(url=image_url)
    return embed
