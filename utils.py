# utils.py

import logging

# Configure logging
logger = logging.getLogger(__name__)

async def log_to_monitor_channel(bot, message: str, level: int = logging.INFO):
    """Log locally and mirror the message to the monitor channel when one is configured."""
    logger.log(level, message)
    try:
        # Lazy import to avoid hard failing when config env vars are not set during tests
        from config import monitor_channel_id
        if not monitor_channel_id:
            return
        channel = bot.get_channel(monitor_channel_id)
        if channel is not None:
            await channel.send(message[:2000])
        else:
            logger.warning(f"Monitor channel with ID {monitor_channel_id} not found.")
    except Exception as e:
        logger.error(f"Failed to send log to monitor channel: {e}")
