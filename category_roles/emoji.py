from typing import List, Optional

# Keycap glyphs 0-9. Position 1-9 maps to the n-th role of a category.
NUMBER_EMOJI: List[str] = [f"{n}️⃣" for n in range(10)]

CANCEL_EMOJI = "❌"

MAX_BUTTONS = 9


def _bare(name: str) -> str:
    # Discord reports keycaps with U+FE0F, clients may send them without.
    return name.replace("️", "")


def index_of(name: Optional[str]) -> Optional[int]:
    if not name:
        return None
    bare = _bare(name)
    for i, glyph in enumerate(NUMBER_EMOJI):
        if _bare(glyph) == bare:
            return i
    return None


def is_cancel(name: Optional[str]) -> bool:
    return bool(name) and _bare(name) == _bare(CANCEL_EMOJI)


def button_for(position: int) -> str:
    if position < 1 or position > MAX_BUTTONS:
        raise ValueError(f"Button position must be 1-{MAX_BUTTONS}, got {position}")
    return NUMBER_EMOJI[position]
