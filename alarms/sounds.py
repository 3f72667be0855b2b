from __future__ import annotations

import logging
import random
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_ALARM_SOUNDS: Dict[str, List[str]] = {
    "Gentle": ["morning dew", "sunrise chimes", "soft piano", "birdsong", "ocean waves"],
    "Classic": ["bell tower", "analog beep", "rooster", "church bells", "grandfather clock"],
    "Upbeat": ["good morning", "rise and shine", "walking on sunshine", "here comes the sun"],
}


def all_sound_names() -> List[str]:
    return [name for names in DEFAULT_ALARM_SOUNDS.values() for name in names]


def pick_alarm_sound(requested: str = "", rng: Optional[random.Random] = None) -> str:
    """Returns the requested sound, or a random default one when none was set."""
    if requested:
        return requested
    choice = (rng or random).choice(all_sound_names())
    logger.debug("No sound set for alarm, picked %s", choice)
    return choice


def format_sound_catalog() -> str:
    lines = [
        "Available alarm sounds:",
        "Any of these can be given as music_name when setting an alarm; "
        "without one a random sound is played.",
    ]
    for category, names in DEFAULT_ALARM_SOUNDS.items():
        lines.append("")
        lines.append(f"{category}:")
        lines.extend(f"  - {name}" for name in names)
    return "\n".join(lines)
