"""Rendering helpers for visualising the tic-tac-toe board."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from ..state.board import EMPTY, MARK_X, SIZE, Board

Cell = Tuple[int, int]


@dataclass(slots=True)
class BoardRenderTheme:
    """Container describing the visual configuration of the board."""

    background: str = "#f4f1ea"
    panel: str = "#fffdf7"
    header: str = "#243447"
    header_text: str = "#f7f3e8"
    grid: str = "#3b4a5a"
    mark_x: str = "#d62828"
    mark_o: str = "#1d70a2"
    highlight: str = "#ffe8a3"


class BoardRenderer:
    """Render emoji text grids and Pillow images of a board."""

    IMAGE_SIZE = (720, 820)
    GRID_TOP = 130
    GRID_MARGIN = 60
    TEXT_MARKS = {EMPTY: "⬜", MARK_X: "❌", "O": "⭕"}
    BOLD_FONTS = (
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    )

    def __init__(self, theme: BoardRenderTheme | None = None) -> None:
        self.theme = theme or BoardRenderTheme()
        self._font_cache: dict[int, ImageFont.ImageFont] = {}

    def render_text(self, board: Board) -> str:
        """Return the grid as three lines of emoji."""

        return "\n".join(
            "".join(self.TEXT_MARKS.get(mark, mark) for mark in row) for row in board.rows()
        )

    def render_cell_label(self, board: Board, row: int, col: int) -> str:
        """Label for an inline keyboard button."""

        mark = board.cell(row, col)
        if mark == EMPTY:
            return f"{row + 1}·{col + 1}"
        return self.TEXT_MARKS.get(mark, mark)

    def render_board_image(self, board: Board, *, highlight: Optional[Cell] = None) -> io.BytesIO:
        """Render the board as a PNG stored in an in-memory buffer."""

        image = Image.new("RGB", self.IMAGE_SIZE, color=self.theme.background)
        draw = ImageDraw.Draw(image)
        self._draw_background(draw)
        if highlight is not None:
            self._draw_highlight(draw, highlight)
        self._draw_grid(draw)
        for row_index, row in enumerate(board.rows()):
            for col_index, mark in enumerate(row):
                if mark != EMPTY:
                    self._draw_mark(draw, row_index, col_index, mark)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        buffer.seek(0)
        return buffer

    def _cell_size(self) -> float:
        width, _ = self.IMAGE_SIZE
        return (width - 2 * self.GRID_MARGIN) / SIZE

    def _cell_box(self, row: int, col: int) -> Tuple[float, float, float, float]:
        size = self._cell_size()
        left = self.GRID_MARGIN + col * size
        top = self.GRID_TOP + row * size
        return left, top, left + size, top + size

    def _draw_background(self, draw: ImageDraw.ImageDraw) -> None:
        width, height = self.IMAGE_SIZE
        margin = 20
        draw.rounded_rectangle(
            (margin, margin, width - margin, height - margin), radius=36, fill=self.theme.panel
        )
        draw.rectangle((margin, margin, width - margin, margin + 80), fill=self.theme.header)
        title = "TIC-TAC-TOE"
        font = self._get_font(44)
        title_width = draw.textlength(title, font=font)
        draw.text(((width - title_width) / 2, margin + 16), title, fill=self.theme.header_text, font=font)

    def _draw_highlight(self, draw: ImageDraw.ImageDraw, cell: Cell) -> None:
        left, top, right, bottom = self._cell_box(*cell)
        draw.rectangle((left + 4, top + 4, right - 4, bottom - 4), fill=self.theme.highlight)

    def _draw_grid(self, draw: ImageDraw.ImageDraw) -> None:
        size = self._cell_size()
        left = self.GRID_MARGIN
        top = self.GRID_TOP
        extent = size * SIZE
        for idx in range(1, SIZE):
            x = left + idx * size
            y = top + idx * size
            draw.line((x, top, x, top + extent), fill=self.theme.grid, width=8)
            draw.line((left, y, left + extent, y), fill=self.theme.grid, width=8)

    def _draw_mark(self, draw: ImageDraw.ImageDraw, row: int, col: int, mark: str) -> None:
        left, top, right, bottom = self._cell_box(row, col)
        inset = self._cell_size() * 0.2
        box = (left + inset, top + inset, right - inset, bottom - inset)
        if mark == MARK_X:
            draw.line((box[0], box[1], box[2], box[3]), fill=self.theme.mark_x, width=18)
            draw.line((box[0], box[3], box[2], box[1]), fill=self.theme.mark_x, width=18)
        else:
            draw.ellipse(box, outline=self.theme.mark_o, width=16)

    def _get_font(self, size: int) -> ImageFont.ImageFont:
        cached = self._font_cache.get(size)
        if cached:
            return cached
        for path in self.BOLD_FONTS:
            try:
                font = ImageFont.truetype(path, size=size)
                self._font_cache[size] = font
                return font
            except OSError:
                continue
        fallback = ImageFont.load_default()
        self._font_cache[size] = fallback
        return fallback
