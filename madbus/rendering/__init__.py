"""Text and image rendering for departure boards."""

from madbus.rendering.board_image import compose_board_image, save_board_image
from madbus.rendering.text import format_board, format_search

__all__ = ["compose_board_image", "format_board", "format_search", "save_board_image"]
