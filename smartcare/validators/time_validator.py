"""Time validation utilities"""
import re
from datetime import datetime, time
from fastapi import HTTPException, status

TIME_PATTERN = re.compile(r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$')


def is_valid_time(time_str: str) -> bool:
    return bool(time_str) and TIME_PATTERN.match(time_str) is not None


def validate_time_format(time_str: str) -> bool:
    """Validate time string is in HH:MM format"""
    if not is_valid_time(time_str):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid time format: {time_str}. Use HH:MM format (e.g., 09:30, 14:00)"
        )
    return True


def parse_time_string(time_str: str) -> time:
    """Parse time string to time object"""
    validate_time_format(time_str)
    return datetime.strptime(time_str, "%H:%M").time()


def to_minutes(time_str: str) -> int:
    """Minutes since midnight for an HH:MM string"""
    parsed = parse_time_string(time_str)
    return parsed.hour * 60 + parsed.minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def slots_overlap(start_a: str, duration_a: int, start_b: str, duration_b: int) -> bool:
    """Whether two [start, start + duration) windows intersect"""
    a = to_minutes(start_a)
    b = to_minutes(start_b)
    return a < b + duration_b and b < a + duration_a
