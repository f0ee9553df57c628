# text_detection.py

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import List, Tuple

import pytesseract
from PIL import Image
from google.cloud import vision

from config import OCR_BACKEND

logger = logging.getLogger(__name__)

Point = Tuple[int, int]


class DetectionError(Exception):
    """The text detection service was unreachable or returned an error."""


@dataclass(frozen=True)
class TextAnnotation:
    text: str
    bounding_box: Tuple[Point, Point, Point, Point]


def _to_int(value) -> int:
    try:
        return int(round(float(value or 0)))
    except (TypeError, ValueError):
        return 0


def _quad_from_vertices(vertices) -> Tuple[Point, Point, Point, Point] | None:
    """
    Cloud Vision omits x or y when the coordinate is 0, so missing values
    are read as 0. Anything that is not exactly four vertices is dropped.
    """
    points = []
    for v in vertices or []:
        points.append((_to_int(getattr(v, "x", 0)), _to_int(getattr(v, "y", 0))))
    if len(points) != 4:
        return None
    return tuple(points)


class GoogleVisionDetector:
    """Text detection through the Google Cloud Vision API."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            # Credentials come from GOOGLE_APPLICATION_CREDENTIALS
            self._client = vision.ImageAnnotatorClient()
        return self._client

    def detect(self, image_bytes: bytes) -> List[TextAnnotation]:
        try:
            response = self.client.text_detection(image=vision.Image(content=image_bytes))
        except Exception as e:
            raise DetectionError(f"Cloud Vision request failed: {e}") from e

        error = getattr(response, "error", None)
        if error is not None and getattr(error, "message", ""):
            raise DetectionError(f"Cloud Vision returned an error: {error.message}")

        annotations = []
        for item in getattr(response, "text_annotations", None) or []:
            box = _quad_from_vertices(getattr(getattr(item, "bounding_poly", None), "vertices", None))
            text = getattr(item, "description", None)
            if box is None or not isinstance(text, str):
                logger.debug(f"Skipping malformed annotation: {item!r}")
                continue
            annotations.append(TextAnnotation(text=text, bounding_box=box))
        logger.info(f"Cloud Vision returned {len(annotations)} text annotations.")
        return annotations


class TesseractDetector:
    """
    Local fallback using Tesseract word boxes. The first annotation is the
    full text spanning all words, matching the Cloud Vision layout.
    """

    def __init__(self, config: str = r'--oem 3 --psm 11'):
        self.config = config

    def detect(self, image_bytes: bytes) -> List[TextAnnotation]:
        try:
            img = Image.open(BytesIO(image_bytes)).convert('RGB')
            data = pytesseract.image_to_data(img, config=self.config, output_type=pytesseract.Output.DICT)
        except Exception as e:
            raise DetectionError(f"Tesseract failed: {e}") from e

        words = []
        texts = data.get("text", [])
        for i, text in enumerate(texts):
            text = (text or "").strip()
            if not text:
                continue
            try:
                left, top = int(data["left"][i]), int(data["top"][i])
                width, height = int(data["width"][i]), int(data["height"][i])
            except (KeyError, IndexError, TypeError, ValueError):
                continue
            box = ((left, top), (left + width, top), (left + width, top + height), (left, top + height))
            words.append(TextAnnotation(text=text, bounding_box=box))

        if not words:
            return []

        x1 = min(w.bounding_box[0][0] for w in words)
        y1 = min(w.bounding_box[0][1] for w in words)
        x2 = max(w.bounding_box[2][0] for w in words)
        y2 = max(w.bounding_box[2][1] for w in words)
        full_text = TextAnnotation(
            text="\n".join(w.text for w in words),
            bounding_box=((x1, y1), (x2, y1), (x2, y2), (x1, y2)),
        )
        logger.info(f"Tesseract returned {len(words)} words.")
        return [full_text] + words


def get_text_detector(backend: str = OCR_BACKEND):
    if backend == "google":
        return GoogleVisionDetector()
    if backend == "tesseract":
        return TesseractDetector()
    raise ValueError(f"Unknown OCR backend '{backend}'")
