"""
Room registry

The hotel has a fixed set of rooms. Room numbers are 3-character,
zero-padded strings ("007") and are the key of every record.
"""
from typing import Tuple

from core.exceptions import UnknownRoom


ALL_ROOM_NUMBERS: Tuple[str, ...] = (
    "001", "002", "003", "004", "005", "006", "007",
    "011", "012", "013", "014", "015", "016", "017",
    "101", "102", "103", "104", "105", "106", "107", "108", "109", "110",
    "111", "112", "113", "114", "115", "116", "117",
    "201", "202", "203", "204", "205", "208", "209", "210", "211",
    "212", "213", "214", "215", "216", "217",
)

_VALID_ROOMS = frozenset(ALL_ROOM_NUMBERS)


def all_room_numbers() -> Tuple[str, ...]:
    return ALL_ROOM_NUMBERS


def is_valid_room(room_number) -> bool:
    return room_number in _VALID_ROOMS


def pad_room_number(value) -> str:
    """
    Pad numeric input to the 3-digit form: 7 -> "007", "12" -> "012".

    Non-numeric input is returned as a string untouched so that the
    registry check rejects it instead of guessing.
    """
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return str(value).zfill(3)
    text = str(value).strip()
    if text.isdigit():
        return str(int(text)).zfill(3)
    return text


def normalize_room_number(value) -> str:
    """
    Return the canonical room number or raise UnknownRoom.

    Examples:
        normalize_room_number(7) -> "007"
        normalize_room_number("101") -> "101"
        normalize_room_number("999") -> UnknownRoom
    """
    if value is None or value == "":
        raise UnknownRoom(value)
    room_number = pad_room_number(value)
    if not is_valid_room(room_number):
        raise UnknownRoom(value)
    return room_number
