import math
from typing import Optional, Sequence

DEFAULT_GRADE_SCALE = [
    {'letter': 'A', 'min': 90, 'max': 100},
    {'letter': 'B', 'min': 80, 'max': 89},
    {'letter': 'C', 'min': 70, 'max': 79},
    {'letter': 'D', 'min': 60, 'max': 69},
    {'letter': 'F', 'min': 0, 'max': 59},
]


def letter_for(percent, scale: Optional[Sequence[dict]] = None) -> str:
    """Resolve a course percentage to a letter using inclusive lower bounds."""
    rows = sorted(scale or DEFAULT_GRADE_SCALE, key=lambda row: row['min'], reverse=True)

    if percent is None or isinstance(percent, bool) or not math.isfinite(percent):
        return rows[-1]['letter']

    percent = max(0, min(100, percent))
    for row in rows:
        if percent >= row['min']:
            return row['letter']
    return rows[-1]['letter']


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_grade_scale(scale) -> Optional[str]:
    """Return the first problem found with a grade scale, or None when it is valid."""
    if not isinstance(scale, (list, tuple)) or not scale:
        return 'Grade scale must be a non-empty array.'

    for i, row in enumerate(scale, start=1):
        if not isinstance(row, dict):
            return f'Row {i}: Must be an object with letter, min and max.'
        if not row.get('letter') or not isinstance(row.get('letter'), str):
            return f'Row {i}: Letter is required.'
        if not _is_number(row.get('min')) or not _is_number(row.get('max')):
            return f'Row {i}: Min and Max must be numbers.'
        if row['min'] > row['max']:
            return f'Row {i}: Min must be less than or equal to Max.'
        if not float(row['min']).is_integer() or not float(row['max']).is_integer():
            return f'Row {i}: Min and Max must be whole numbers.'

    ordered = sorted(scale, key=lambda row: row['max'], reverse=True)
    for i in range(1, len(ordered)):
        if ordered[i]['max'] != ordered[i - 1]['min'] - 1:
            return f'Rows {i} and {i + 1}: Ranges must be contiguous whole numbers (e.g., max of one is min-1 of next).'

    letters = [row['letter'] for row in scale]
    if len(set(letters)) != len(letters):
        return 'Duplicate letter grades are not allowed.'
    return None
