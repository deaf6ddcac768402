"""
Structured time blocks for schedule entries, plus the legacy notes parser.

Older exports embedded the sub-schedule of an entry inside its free-text
notes, either as ``Times: [{"activity_type": ..., "start_time": ...}]`` or
as a single ``(HH:MM-HH:MM)`` fragment. Entries now carry a proper
``time_blocks`` list; the parser below only runs at the import boundary.
"""
import json
import logging
import re
from typing import List, Optional, Tuple

from rosterdesk.models.schedule import ActivityType, ShiftType, default_time_blocks

logger = logging.getLogger(__name__)

_TIMES_PATTERN = re.compile(r'Times:\s*(\[.*?\])', re.DOTALL)
_RANGE_PATTERN = re.compile(r'\((\d{2}:\d{2})-(\d{2}:\d{2})\)')
_HHMM_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')

# Generated fragments that are not user notes
_NOISE_PATTERNS = [
    re.compile(r'Times:\s*\[.*?\]', re.DOTALL),
    re.compile(r'Shift:\s*.+?(?:\n|$)'),
    re.compile(r'Auto-generated.*?\)'),
]


def is_valid_time(value) -> bool:
    return isinstance(value, str) and bool(_HHMM_PATTERN.match(value))


def normalize_block(block: dict, fallback_activity: ActivityType) -> Optional[dict]:
    """Validate one block; returns None when it cannot be used."""
    start = block.get('start_time')
    end = block.get('end_time')
    if not (is_valid_time(start) and is_valid_time(end)):
        return None
    try:
        activity = ActivityType(block.get('activity_type') or fallback_activity.value)
    except ValueError:
        activity = fallback_activity
    return {'activity_type': activity.value, 'start_time': start, 'end_time': end}


def parse_legacy_notes(notes: Optional[str], activity_type: ActivityType,
                       shift_type: ShiftType = ShiftType.NORMAL) -> Tuple[List[dict], str]:
    """Split legacy notes into (time_blocks, clean_notes).

    Falls back to the default hours of `shift_type` when the notes carry no
    usable time information.
    """
    if not notes:
        return default_time_blocks(shift_type, activity_type), ''

    blocks: List[dict] = []

    match = _TIMES_PATTERN.search(notes)
    if match:
        try:
            raw = json.loads(match.group(1))
        except ValueError:
            logger.warning("Unparseable time split in legacy notes: %r", match.group(1)[:80])
            raw = []
        if isinstance(raw, list):
            for item in raw:
                if isinstance(item, dict):
                    block = normalize_block(item, activity_type)
                    if block:
                        blocks.append(block)

    if not blocks:
        range_match = _RANGE_PATTERN.search(notes)
        if range_match and is_valid_time(range_match.group(1)) and is_valid_time(range_match.group(2)):
            blocks = [{
                'activity_type': activity_type.value,
                'start_time': range_match.group(1),
                'end_time': range_match.group(2),
            }]

    clean = notes
    for pattern in _NOISE_PATTERNS:
        clean = pattern.sub('', clean)
    clean = clean.strip()

    if not blocks:
        blocks = default_time_blocks(shift_type, activity_type)
    return blocks, clean
