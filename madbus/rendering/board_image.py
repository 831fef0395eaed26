"""Departure board image composer."""

from __future__ import annotations

from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from madbus.logic.merger import DepartureBoard, DisplayRow
from madbus.rendering.text import format_clock

BOARD_WIDTH = 256
HEADER_HEIGHT = 14
ROW_HEIGHT = 12
DEFAULT_ROWS = 6

DOT_DIAMETER = 6
DOT_LEFT_MARGIN = 4
DOT_CENTER_OFFSET = DOT_LEFT_MARGIN + DOT_DIAMETER // 2
CLOCK_X = 14
ROUTE_X = 70
HEADSIGN_X = 96

LATE_THRESHOLD_MIN = 3

COLOR_BACKGROUND = (0, 0, 0)
COLOR_HEADER = (255, 255, 255)
COLOR_HEADER_STATIC = (220, 180, 0)
COLOR_TEXT = (255, 255, 255)
COLOR_DIM_TEXT = (48, 48, 48)
COLOR_SEPARATOR = (42, 42, 42)

COLOR_LIVE = (0, 200, 0)
COLOR_LATE = (220, 180, 0)
COLOR_SCHEDULED = (72, 72, 72)
COLOR_PLACEHOLDER_DOT = (30, 30, 30)

FONT = ImageFont.load_default()


def _dot_color(row: DisplayRow) -> tuple[int, int, int]:
    if not row.is_live:
        return COLOR_SCHEDULED
    if (row.delay_minutes or 0) >= LATE_THRESHOLD_MIN:
        return COLOR_LATE
    return COLOR_LIVE


def row_top(index: int) -> int:
    return HEADER_HEIGHT + index * ROW_HEIGHT


def _draw_row(draw: ImageDraw.ImageDraw, index: int, row: DisplayRow | None) -> None:
    top = row_top(index)
    dot_top = top + (ROW_HEIGHT - DOT_DIAMETER) // 2
    dot_box = [DOT_LEFT_MARGIN, dot_top, DOT_LEFT_MARGIN + DOT_DIAMETER - 1, dot_top + DOT_DIAMETER - 1]

    if row is None:
        draw.ellipse(dot_box, fill=COLOR_PLACEHOLDER_DOT)
        draw.text((CLOCK_X, top), "--", font=FONT, fill=COLOR_DIM_TEXT)
        return

    draw.ellipse(dot_box, fill=_dot_color(row))
    draw.text((CLOCK_X, top), format_clock(row.effective_time).strip(), font=FONT, fill=COLOR_TEXT)
    draw.text((ROUTE_X, top), row.route_id, font=FONT, fill=COLOR_TEXT)
    draw.text((HEADSIGN_X, top), row.headsign[:26], font=FONT, fill=COLOR_TEXT)


def compose_board_image(board: DepartureBoard, rows: int = DEFAULT_ROWS) -> Image.Image:
    """Compose an RGB image of the next ``rows`` departures; empty slots get placeholders."""
    if rows < 1:
        raise ValueError(f"rows must be positive, got {rows}.")
    height = HEADER_HEIGHT + rows * ROW_HEIGHT
    image = Image.new("RGB", (BOARD_WIDTH, height), COLOR_BACKGROUND)
    draw = ImageDraw.Draw(image)

    header_color = COLOR_HEADER_STATIC if board.static_only else COLOR_HEADER
    draw.text((DOT_LEFT_MARGIN, 1), (board.stop_name or board.stop_id)[:40], font=FONT, fill=header_color)
    draw.line((0, HEADER_HEIGHT - 1, BOARD_WIDTH - 1, HEADER_HEIGHT - 1), fill=COLOR_SEPARATOR)

    shown = list(board.rows)[:rows]
    for idx in range(rows):
        _draw_row(draw, idx, shown[idx] if idx < len(shown) else None)
    return image


def save_board_image(board: DepartureBoard, path: str, rows: int = DEFAULT_ROWS) -> Path:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    compose_board_image(board, rows).save(output_path, format="PNG")
    return output_path


__all__ = ["compose_board_image", "row_top", "save_board_image"]
