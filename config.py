# config.py

from dotenv import load_dotenv
import os
import logging

# Load environment variables from the .env file
load_dotenv()

DEV_MODE = os.getenv('DEV_MODE', 'false').strip().lower() == 'true'

# Basic Bot/DB Configuration
DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
MONGODB_URI = os.getenv('MONGODB_URI')
DATABASE_NAME = os.getenv('DATABASE_NAME', 'GPTHellbot')

# Configure structured logging
logging.basicConfig(
    level=logging.DEBUG if DEV_MODE else logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)

def _get_int_env(var_name: str, default: int | None = None) -> int | None:
    raw = os.getenv(var_name)
    if raw is None or raw.strip() == "":
        if default is None:
            logging.warning(f"Environment variable '{var_name}' is not set; defaulting to None.")
            return None
        return default
    try:
        return int(raw)
    except ValueError:
        logging.warning(f"Environment variable '{var_name}' has non-integer value '{raw}'; defaulting to {default}.")
        return default

def _get_float_env(var_name: str, default: float) -> float:
    raw = os.getenv(var_name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logging.warning(f"Environment variable '{var_name}' has non-numeric value '{raw}'; defaulting to {default}.")
        return default

# Mongo Collections
TASK_SETTINGS_COLLECTION = 'Task_Settings'
REPORTS_COLLECTION = 'Operation_Reports'
COUNTERS_COLLECTION = 'Counters'
SUBMISSION_COUNTS_COLLECTION = 'Submission_Counts'

# Discord IDs (optional at import time; cogs validate at runtime)
guild_id = _get_int_env('GUILD_ID')
operation_command_channel_id = _get_int_env('OPERATION_COMMAND_CHANNEL_ID')
operation_results_channel_id = _get_int_env('OPERATION_RESULTS_CHANNEL_ID')
monitor_channel_id = _get_int_env('MONITOR_CHANNEL_ID')

# Text detection backend: "google" (Cloud Vision) or "tesseract"
OCR_BACKEND = os.getenv('OCR_BACKEND', 'google').strip().lower()

# Submitted images
ALLOWED_EXTENSIONS = ('.png', '.jpg', '.jpeg')
MAX_FILE_SIZE = 8 * 1024 * 1024  # 8 MB

# Storage for raw and annotated screenshots
LOGS_DIR = os.getenv('LOGS_DIR', os.path.join(os.path.dirname(os.path.abspath(__file__)), 'logs'))
IMAGE_SUBMITTED_DIR = os.path.join(LOGS_DIR, 'imageSubmitted')
IMAGE_DEBUG_DIR = os.path.join(LOGS_DIR, 'imageDebugOutput')

# Mission markers on the operation summary screen
MISSION_SLOTS = ("1st", "2nd", "3rd")

# Sample point offset from a marker's first vertex, as a fraction of image size
ANCHOR_OFFSET_X = _get_float_env('ANCHOR_OFFSET_X', 0.03)
ANCHOR_OFFSET_Y = _get_float_env('ANCHOR_OFFSET_Y', 0.05)

# Color classification (tuned against the default HD2 UI theme)
COLOR_DOMINANCE_RATIO = _get_float_env('COLOR_DOMINANCE_RATIO', 1.2)
COLOR_MIN_CHANNEL = _get_float_env('COLOR_MIN_CHANNEL', 50)

# Task settings defaults; the live values are read from Mongo per submission
DEFAULT_MIN_DIFFICULTY_LEVEL = _get_int_env('DEFAULT_MIN_DIFFICULTY_LEVEL', 7)
DEFAULT_OPERATION = os.getenv('DEFAULT_OPERATION', 'Unknown Operation')
DEFAULT_PLANET = os.getenv('DEFAULT_PLANET', 'Unknown Planet')

# Mission numbering seed: the first report becomes #1
MISSION_COUNTER_SEED = _get_int_env('MISSION_COUNTER_SEED', 0)
