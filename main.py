import os
import logging
import discord
import traceback
from discord.ext import commands
from config import DEV_MODE, guild_id
from database import create_indexes

logging.basicConfig(level=logging.DEBUG if DEV_MODE else logging.INFO)

# Add filter to reduce noisy discord reconnect logs
class DiscordNoiseFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        msg = str(record.getMessage())
        # Suppress benign reconnect/close messages
        if "Attempting a reconnect" in msg:
            return False
        if "WebSocket closed with 1000" in msg:
            return False
        return True

# Apply filter and set discord log level
discord_logger = logging.getLogger("discord")
discord_logger.setLevel(logging.WARNING)
for handler in logging.getLogger().handlers:
    handler.addFilter(DiscordNoiseFilter())

intents = discord.Intents.default()
intents.message_content = True
intents.guilds = True
bot = commands.Bot(command_prefix='!', intents=intents)


@bot.event
async def on_ready():
    logging.info(f'Logged in as {bot.user} (ID: {bot.user.id})')
    logging.info(f'Cogs loaded: {list(bot.cogs.keys())}')
    if DEV_MODE:
        logging.warning("DEV_MODE is active: difficulty problems are reported as warnings instead of failures.")
    await sync_commands()

async def sync_commands():
    """
    Register slash commands. With GUILD_ID set they are copied to that guild
    so changes show up immediately instead of waiting on global propagation.
    """
    try:
        if guild_id:
            guild = discord.Object(id=guild_id)
            bot.tree.copy_global_to(guild=guild)
            synced = await bot.tree.sync(guild=guild)
        else:
            synced = await bot.tree.sync()
        logging.info(f"Synced {len(synced)} application commands: {[c.name for c in synced]}")
    except Exception as e:
        logging.error(f"Failed to sync application commands: {e}")

async def load_cogs():
    """
    Load the bot's cogs.
    """
    cogs = [
        'cogs.operation_cog',
    ]
    for cog in cogs:
        try:
            await bot.load_extension(cog)
            logging.info(f"Successfully loaded cog: {cog}")
        except Exception as e:
            logging.error(f"Failed to load cog {cog}: {e}")
            logging.error(traceback.format_exc())

if __name__ == '__main__':
    import asyncio

    token = os.environ.get('DISCORD_TOKEN')
    mongo_uri = os.environ.get('MONGODB_URI')

    if not token:
        raise ValueError("DISCORD_TOKEN environment variable is not set!")
    if not mongo_uri:
        raise ValueError("MONGODB_URI environment variable is not set!")

    async def runner():
        await create_indexes()
        await load_cogs()
        await bot.start(token)

    asyncio.run(runner())
