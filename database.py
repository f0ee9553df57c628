import logging
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReturnDocument
from typing import List, Dict, Any, Optional
from config import (
    MONGODB_URI, DATABASE_NAME,
    TASK_SETTINGS_COLLECTION, REPORTS_COLLECTION,
    COUNTERS_COLLECTION, SUBMISSION_COUNTS_COLLECTION,
    DEFAULT_MIN_DIFFICULTY_LEVEL, DEFAULT_OPERATION, DEFAULT_PLANET,
    MISSION_COUNTER_SEED,
)
from datetime import datetime

logger = logging.getLogger(__name__)

# MongoDB Client and Database
client = None  # Global client variable
_db = None     # Global db variable

TASK_SETTINGS_ID = "taskConfig"
MISSION_COUNTER_ID = "mission_number"

TASK_SETTINGS_DEFAULTS = {
    "min_difficulty_level": DEFAULT_MIN_DIFFICULTY_LEVEL,
    "default_operation": DEFAULT_OPERATION,
    "default_planet": DEFAULT_PLANET,
}

################################################
# MONGO CLIENT AND INDEX MANAGEMENT
################################################

async def get_db():
    """
    Initializes the MongoDB client on first use and returns the database.
    """
    global client, _db
    if client is None:
        client = AsyncIOMotorClient(MONGODB_URI)
        _db = client[DATABASE_NAME]
        logger.info("MongoDB client initialized.")
    return _db

async def create_indexes():
    """
    Ensures necessary indexes are created on startup.
    """
    try:
        db = await get_db()
        await db[REPORTS_COLLECTION].create_index("mission_number", unique=True)
        await db[REPORTS_COLLECTION].create_index("submitted_at")
        await db[REPORTS_COLLECTION].create_index("submitted_by_discord_id")
        await db[REPORTS_COLLECTION].create_index("status")
        logger.info("MongoDB indexes created/ensured.")
    except Exception as e:
        logger.error(f"Error creating MongoDB indexes: {e}")

################################################
# TASK SETTINGS
################################################

async def get_task_settings() -> Dict[str, Any]:
    """
    Reads the live task settings on every call so threshold changes apply
    to the next submission. Missing keys fall back to config defaults.
    """
    settings = dict(TASK_SETTINGS_DEFAULTS)
    try:
        db = await get_db()
        doc = await db[TASK_SETTINGS_COLLECTION].find_one({"_id": TASK_SETTINGS_ID})
        if doc:
            for key in TASK_SETTINGS_DEFAULTS:
                if doc.get(key) is not None:
                    settings[key] = doc[key]
        settings["min_difficulty_level"] = int(settings["min_difficulty_level"])
    except Exception as e:
        logger.error(f"Error fetching task settings, using defaults: {e}")
        settings = dict(TASK_SETTINGS_DEFAULTS)
    return settings

async def update_task_settings(**fields) -> bool:
    unknown = set(fields) - set(TASK_SETTINGS_DEFAULTS)
    if unknown:
        raise ValueError(f"Unknown task settings: {', '.join(sorted(unknown))}")
    try:
        db = await get_db()
        await db[TASK_SETTINGS_COLLECTION].update_one(
            {"_id": TASK_SETTINGS_ID}, {"$set": fields}, upsert=True
        )
        logger.info(f"Updated task settings: {fields}")
        return True
    except Exception as e:
        logger.error(f"Failed to update task settings {fields}: {e}")
        return False

################################################
# COUNTERS
################################################

async def get_next_mission_number() -> int:
    """
    Returns the next sequential report number from an atomic counter.
    Falls back to max(mission_number)+1 if the counter keeps failing.
    """
    db = await get_db()
    counters = db[COUNTERS_COLLECTION]
    seed_value = MISSION_COUNTER_SEED

    # Up to 3 attempts for a clean atomic increment
    for attempt in range(3):
        try:
            await counters.update_one({"_id": MISSION_COUNTER_ID}, {"$setOnInsert": {"seq": seed_value}}, upsert=True)
            counter_doc = await counters.find_one_and_update(
                {"_id": MISSION_COUNTER_ID},
                {"$inc": {"seq": 1}},
                return_document=ReturnDocument.AFTER,
            )
            return int(counter_doc.get("seq", seed_value + 1)) if counter_doc else seed_value + 1
        except Exception as e:
            logger.warning(f"Attempt {attempt+1}/3 to increment mission counter failed: {e}")

    try:
        docs = await db[REPORTS_COLLECTION].find({}, {"mission_number": 1}).sort("mission_number", -1).limit(1).to_list(length=1)
        last = int(docs[0]["mission_number"]) if docs else seed_value
        mission_number = max(last, seed_value) + 1
        try:
            await counters.update_one({"_id": MISSION_COUNTER_ID}, {"$max": {"seq": mission_number}}, upsert=True)
        except Exception as e:
            logger.warning(f"Could not resync mission counter to {mission_number}: {e}")
        logger.info(f"Derived next mission_number={mission_number} from reports fallback.")
        return mission_number
    except Exception as e:
        logger.error(f"Failed to derive mission number from reports fallback: {e}")
        return seed_value + 1

async def increment_submission_count(discord_id: int) -> Optional[int]:
    """
    Atomically bumps the per-user submission counter, keyed by Discord ID.
    Returns the new count, or None if the update failed.
    """
    try:
        db = await get_db()
        doc = await db[SUBMISSION_COUNTS_COLLECTION].find_one_and_update(
            {"_id": int(discord_id)},
            {"$inc": {"count": 1}, "$set": {"last_submitted_at": datetime.utcnow()}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc.get("count", 1)) if doc else 1
    except Exception as e:
        logger.error(f"Error incrementing submission count for {discord_id}: {e}")
        return None

################################################
# REPORTS
################################################

async def insert_operation_report(
    mission_number: int,
    result,
    submitted_by_discord_id: int,
    participants: List[int],
    operation: str,
    planet: str,
    image_path: Optional[str] = None,
) -> bool:
    """
    Store one analyzed operation. `result` is an AnalysisResult.
    """
    doc = {
        "mission_number": int(mission_number),
        "status": result.status.value,
        "message": result.message,
        "difficulty_level": result.difficulty_level,
        "mission_count": result.mission_count,
        "slot_classifications": dict(result.slot_classifications),
        "failure_reasons": list(result.failure_reasons),
        "dev_mode": result.dev_mode,
        "operation": operation,
        "planet": planet,
        "participants": [int(p) for p in participants],
        "submitted_by_discord_id": int(submitted_by_discord_id),
        "submitted_at": datetime.utcnow(),
        "image_path": image_path,
    }
    try:
        db = await get_db()
        await db[REPORTS_COLLECTION].insert_one(doc)
        logger.info(f"Inserted operation report #{mission_number} ({doc['status']}).")
        return True
    except Exception as e:
        logger.error(f"Failed to insert operation report #{mission_number}: {e}")
        return False
