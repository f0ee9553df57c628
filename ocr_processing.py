import enum
import logging
import re
from dataclasses import dataclass, field
from io import BytesIO
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from config import (
    ANCHOR_OFFSET_X,
    ANCHOR_OFFSET_Y,
    COLOR_DOMINANCE_RATIO,
    COLOR_MIN_CHANNEL,
    MISSION_SLOTS,
)
from text_detection import DetectionError, TextAnnotation

logger = logging.getLogger(__name__)

GREEN = "green"
RED = "red"
NOT_COMPLETED = "not-completed"

REASON_MISSING_DIFFICULTY = "difficulty level is missing"
REASON_MISSION_FAILED = "one or more missions failed (red detected)"
REASON_NO_MISSIONS = "no mission results were detected"

NUMBER_PATTERN = re.compile(r'\b\d+\b')
CLOCK_PATTERN = re.compile(r'\d+:\d{2}:\d{2}')


class AnalysisError(Exception):
    """The screenshot could not be analyzed at all."""


class OperationStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


@dataclass(frozen=True)
class AnchorPoint:
    slot_key: str
    x: float
    y: float


@dataclass(frozen=True)
class Outcome:
    status: OperationStatus
    message: str
    failure_reasons: Tuple[str, ...] = ()
    # Reasons that would have rejected the report if dev mode were off
    waived_reasons: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisResult:
    status: OperationStatus
    message: str
    difficulty_level: Optional[int]
    slot_classifications: Dict[str, str]
    annotations: Tuple[TextAnnotation, ...]
    anchors: Dict[str, AnchorPoint]
    failure_reasons: Tuple[str, ...] = ()
    waived_reasons: Tuple[str, ...] = ()
    dev_mode: bool = False
    samples: Dict[str, Tuple[int, int, int]] = field(default_factory=dict)

    @property
    def mission_count(self) -> int:
        return sum(1 for c in self.slot_classifications.values() if c == GREEN)

    @property
    def has_red(self) -> bool:
        return RED in self.slot_classifications.values()

    @property
    def has_not_completed(self) -> bool:
        return NOT_COMPLETED in self.slot_classifications.values()


# =============================================================================
# ANCHORS & COLORS
# =============================================================================

def locate_anchors(annotations: Sequence[TextAnnotation], width: int, height: int) -> Dict[str, AnchorPoint]:
    """
    Finds the "1st"/"2nd"/"3rd" mission markers and places a sample point
    below and to the right of each marker's first vertex. A marker seen twice
    keeps the later annotation.
    """
    anchors = {}
    for annotation in annotations:
        key = annotation.text.strip().lower()
        if key not in MISSION_SLOTS:
            continue
        x0, y0 = annotation.bounding_box[0]
        anchors[key] = AnchorPoint(
            slot_key=key,
            x=x0 + width * ANCHOR_OFFSET_X,
            y=y0 + height * ANCHOR_OFFSET_Y,
        )
    return anchors


def sample_color(image: np.ndarray, x: float, y: float) -> Tuple[int, int, int]:
    """Mean RGB of the 3x3 block around (x, y); pixels off the edge are clamped."""
    h, w = image.shape[:2]
    cx, cy = int(np.floor(x + 0.5)), int(np.floor(y + 0.5))
    xs = np.clip(np.array([cx - 1, cx, cx + 1]), 0, w - 1)
    ys = np.clip(np.array([cy - 1, cy, cy + 1]), 0, h - 1)
    if cx < 0 or cy < 0 or cx >= w or cy >= h:
        logger.warning(f"Sample point ({x:.1f}, {y:.1f}) is outside the {w}x{h} image; clamping.")
    patch = image[np.ix_(ys, xs)][..., :3].astype(np.float64)
    mean = patch.reshape(-1, 3).mean(axis=0)
    # Round half up, channel means are never negative
    return tuple(int(v + 0.5) for v in mean)


def classify_color(rgb, ratio: float = COLOR_DOMINANCE_RATIO, floor: float = COLOR_MIN_CHANNEL) -> str:
    r, g, b = rgb
    if g > r * ratio and g > b * ratio and g > floor:
        return GREEN
    if r > g * ratio and r > b * ratio and r > floor:
        return RED
    return NOT_COMPLETED


# =============================================================================
# DIFFICULTY
# =============================================================================

def extract_difficulty(text: str) -> Optional[int]:
    """
    Reads the difficulty level out of the joined OCR text.

    The operation screen prints it next to a "|" separator, so any number
    written as "n |" or "| n" is taken; when several qualify the last one
    read wins. Without a separator, the last number in front of the first
    H:MM:SS clock is used instead.
    """
    candidates = list(NUMBER_PATTERN.finditer(text))
    if not candidates:
        return None

    difficulty = None
    for match in candidates:
        n = match.group()
        if f"{n} |" in text or f"| {n}" in text:
            difficulty = int(n)
    if difficulty is not None:
        return difficulty

    clock = CLOCK_PATTERN.search(text)
    if clock is None:
        return None
    before = [m for m in candidates if m.start() < clock.start()]
    if before:
        return int(before[-1].group())
    return None


# =============================================================================
# OUTCOME
# =============================================================================

def evaluate_outcome(
    slot_classifications: Dict[str, str],
    difficulty_level: Optional[int],
    min_difficulty_level: int,
    dev_mode: bool = False,
) -> Outcome:
    """
    Combines the mission colors and difficulty into the operation status.

    Difficulty problems are waived in dev mode but still reported. A red
    mission or a screenshot with no readable missions always fails.
    """
    waivable = []
    if difficulty_level is None:
        waivable.append(REASON_MISSING_DIFFICULTY)
    elif difficulty_level < min_difficulty_level:
        waivable.append(f"difficulty level {difficulty_level} is below {min_difficulty_level}")

    hard = []
    colors = list(slot_classifications.values())
    if RED in colors:
        hard.append(REASON_MISSION_FAILED)
    if not colors:
        hard.append(REASON_NO_MISSIONS)

    reasons = tuple(waivable + hard)
    rejecting = hard if dev_mode else waivable + hard

    if rejecting:
        return Outcome(
            status=OperationStatus.FAILED,
            message=f"❌ Operation Failed: {', '.join(rejecting)}",
            failure_reasons=reasons,
            waived_reasons=tuple(waivable) if dev_mode else (),
        )
    if NOT_COMPLETED in colors:
        status = OperationStatus.PARTIAL
        message = "⚠️ Operation Not Fully Completed: Some missions are pending."
    else:
        status = OperationStatus.COMPLETED
        message = "✅ Operation Completed: All missions successful."
    return Outcome(
        status=status,
        message=message,
        failure_reasons=reasons,
        waived_reasons=tuple(waivable) if dev_mode else (),
    )


# =============================================================================
# PIPELINE
# =============================================================================

def decode_image(image_bytes: bytes) -> np.ndarray:
    """Decodes the upload into an RGB array (height, width, 3)."""
    try:
        img = Image.open(BytesIO(image_bytes)).convert('RGB')
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise AnalysisError(f"Could not decode image: {e}") from e
    return np.array(img)


def analyze_image(
    image_bytes: bytes,
    detector,
    min_difficulty_level: int,
    dev_mode: bool = False,
    debug_output=None,
) -> AnalysisResult:
    """
    Runs the whole mission-screen analysis for one screenshot.

    `detector` is anything with `detect(bytes) -> list[TextAnnotation]`.
    When `debug_output` (a path or writable file object) is given, an
    annotated copy of the screenshot is written there; a failure to render
    is logged and does not affect the result.
    """
    image = decode_image(image_bytes)
    height, width = image.shape[:2]

    try:
        raw = detector.detect(image_bytes)
    except DetectionError:
        raise
    except Exception as e:
        raise DetectionError(f"Text detection failed: {e}") from e

    annotations = _valid_annotations(raw)
    if not annotations:
        logger.warning("No text detected in the image.")

    detected_text = " ".join(a.text.lower() for a in annotations)
    logger.debug(f"Extracted text: {detected_text}")

    anchors = locate_anchors(annotations, width, height)
    samples = {}
    slot_classifications = {}
    for key, anchor in anchors.items():
        rgb = sample_color(image, anchor.x, anchor.y)
        samples[key] = rgb
        slot_classifications[key] = classify_color(rgb)
        logger.info(f"{key.upper()} sampled RGB {rgb} -> {slot_classifications[key]}")

    difficulty_level = extract_difficulty(detected_text)
    outcome = evaluate_outcome(slot_classifications, difficulty_level, min_difficulty_level, dev_mode)
    logger.info(f"Analysis finished: {outcome.status.value} (difficulty={difficulty_level}, slots={slot_classifications})")

    result = AnalysisResult(
        status=outcome.status,
        message=outcome.message,
        difficulty_level=difficulty_level,
        slot_classifications=slot_classifications,
        annotations=tuple(annotations),
        anchors=anchors,
        failure_reasons=outcome.failure_reasons,
        waived_reasons=outcome.waived_reasons,
        dev_mode=dev_mode,
        samples=samples,
    )

    if debug_output is not None:
        # boundary_drawing imports from this module
        from boundary_drawing import write_debug_image
        write_debug_image(image, result, debug_output)

    return result


def _valid_annotations(raw) -> List[TextAnnotation]:
    """Drops anything that is not a usable annotation instead of failing."""
    if not isinstance(raw, (list, tuple)):
        logger.warning(f"Unexpected detector output of type {type(raw).__name__}; treating as no text.")
        return []
    valid = []
    for item in raw:
        try:
            box = tuple((int(x), int(y)) for x, y in item.bounding_box)
            if len(box) != 4 or not isinstance(item.text, str):
                raise ValueError("bad shape")
        except (AttributeError, TypeError, ValueError):
            logger.debug(f"Dropping malformed annotation: {item!r}")
            continue
        valid.append(item if item.bounding_box == box else TextAnnotation(text=item.text, bounding_box=box))
    return valid
