"""ZPL payload for a single barcode label."""

from __future__ import annotations

LABEL_HEIGHT = 73
TEXT_X = 155
BARCODE_X = 0
MAX_NAME_LENGTH = 28


def build_label(item_id: str, item_name: str) -> str:
    """Return the ZPL for a Code 128 barcode of ``item_id`` with ``item_name`` beside it.

    Names longer than 28 characters are truncated.
    """
    center_y = LABEL_HEIGHT // 2
    text_y = center_y - 10
    barcode_y = center_y - 7
    name = item_name[:MAX_NAME_LENGTH]

    barcode = f"^FT{BARCODE_X},{barcode_y}^BY1^BCN,30,Y,N,N^FD{item_id}^FS"
    text = f"^FT{TEXT_X},{text_y}^A0N,18,18^FD{name}^FS"
    return f"^XA{barcode}{text}^XZ"
