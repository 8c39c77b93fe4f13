"""Table region extraction — column letters and origin cropping."""

from __future__ import annotations

import pandas as pd

from vendor_ingest.models import Overrides


def column_letter_to_index(letters: str) -> int:
    """Decode bijective base-26 column letters: ``A`` -> 1, ``Z`` -> 26, ``AA`` -> 27."""
    letters = letters.strip().upper()
    if not letters or not letters.isascii() or not letters.isalpha():
        raise ValueError(f"Invalid column letters: {letters!r}")
    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index


def column_index_to_letter(index: int) -> str:
    """Inverse of :func:`column_letter_to_index` for 1-based *index*."""
    if isinstance(index, bool) or not isinstance(index, int) or index < 1:
        raise ValueError(f"Column index must be an integer >= 1, got {index!r}")
    letters: list[str] = []
    while index:
        index, rem = divmod(index - 1, 26)
        letters.append(chr(ord("A") + rem))
    return "".join(reversed(letters))


def crop_grid(grid: pd.DataFrame, start_row: int = 1, start_col: str = "A") -> pd.DataFrame:
    """Return rows >= *start_row* and columns >= *start_col* as a fresh grid.

    Positions past the end of the grid yield an empty grid. The source
    frame is left untouched and the result is re-indexed from zero.
    """
    if start_row < 1:
        raise ValueError("start_row must be >= 1")
    col_index = column_letter_to_index(start_col)
    cropped = grid.iloc[start_row - 1 :, col_index - 1 :].copy()
    cropped.columns = range(cropped.shape[1])
    return cropped.reset_index(drop=True)


def crop_with_overrides(grid: pd.DataFrame, overrides: Overrides) -> pd.DataFrame:
    return crop_grid(grid, overrides.start_row, overrides.start_col)
