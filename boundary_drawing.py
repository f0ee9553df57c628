# boundary_drawing.py

import os
import cv2
import logging
import numpy as np

from ocr_processing import GREEN, RED

logger = logging.getLogger(__name__)

# BGR colors
BOX_COLOR = (0, 0, 255)          # red
TEXT_COLOR = (255, 0, 0)         # blue
LABEL_COLOR = (0, 255, 255)      # yellow
MARKER_COLORS = {
    GREEN: (0, 255, 0),          # lime
    RED: (0, 0, 255),
}
DEFAULT_MARKER_COLOR = (255, 255, 255)

# FONT_HERSHEY_SIMPLEX is roughly 22px tall at scale 1.0
HERSHEY_BASE_HEIGHT = 22.0


class RenderError(Exception):
    """The debug image could not be drawn or written."""


def marker_color(classification):
    return MARKER_COLORS.get(classification, DEFAULT_MARKER_COLOR)

def draw_annotation_boxes(image, annotations):
    """
    Outline every text annotation and write its text above the first vertex.
    """
    for annotation in annotations:
        pts = np.array(annotation.bounding_box, dtype=np.int32).reshape((-1, 1, 2))
        cv2.polylines(image, [pts], isClosed=True, color=BOX_COLOR, thickness=2)
        x1, y1 = annotation.bounding_box[0]
        # Hershey fonts only cover ASCII
        label = annotation.text.encode('ascii', 'replace').decode('ascii').replace('\n', ' ')
        cv2.putText(image, label, (x1, max(y1 - 5, 10)),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.4, TEXT_COLOR, 1)
    return image

def draw_mission_markers(image, anchors, slot_classifications):
    """
    Put an X where each mission color was sampled, colored by its result,
    with a "1ST: green" style label next to it.
    """
    w = image.shape[1]
    glyph_px = max(int(w * 0.015), 8)
    font_scale = glyph_px / HERSHEY_BASE_HEIGHT
    for slot, anchor in anchors.items():
        classification = slot_classifications.get(slot, "unknown")
        x, y = int(round(anchor.x)), int(round(anchor.y))
        cv2.drawMarker(image, (x, y), marker_color(classification),
                       markerType=cv2.MARKER_TILTED_CROSS, markerSize=glyph_px, thickness=2)
        cv2.putText(image, f"{slot.upper()}: {classification}", (x + 15, y),
                    cv2.FONT_HERSHEY_SIMPLEX, font_scale, LABEL_COLOR, 2)
    return image

def render_debug_image(image_rgb, annotations, anchors, slot_classifications):
    """
    Returns an annotated BGR copy of the screenshot, or None when there is
    nothing to mark. The source array is never modified.
    """
    if not annotations or not anchors:
        logger.info(
            f"Skipping debug image: {len(annotations or [])} annotations, {len(anchors or {})} anchors."
        )
        return None
    try:
        canvas = cv2.cvtColor(np.ascontiguousarray(image_rgb), cv2.COLOR_RGB2BGR)
        draw_annotation_boxes(canvas, annotations)
        draw_mission_markers(canvas, anchors, slot_classifications)
    except cv2.error as e:
        raise RenderError(f"Failed to draw debug image: {e}") from e
    return canvas

def encode_png(image_bgr) -> bytes:
    ok, buf = cv2.imencode('.png', image_bgr)
    if not ok:
        raise RenderError("PNG encoding failed.")
    return buf.tobytes()

def write_debug_image(image_rgb, result, destination) -> bool:
    """
    Renders the debug overlay for an AnalysisResult and writes it as PNG to
    `destination` (a path or a binary file object). Returns True when an
    image was written. Errors are logged and never raised.
    """
    try:
        annotated = render_debug_image(
            image_rgb, result.annotations, result.anchors, result.slot_classifications
        )
        if annotated is None:
            return False
        data = encode_png(annotated)
        if isinstance(destination, (str, os.PathLike)):
            os.makedirs(os.path.dirname(os.fspath(destination)) or '.', exist_ok=True)
            with open(destination, 'wb') as f:
                f.write(data)
        else:
            destination.write(data)
        logger.info(f"Debug image saved with color detection marks: {destination}")
        return True
    except Exception as e:
        logger.error(f"Debug image could not be written to {destination}: {e}")
        return False
