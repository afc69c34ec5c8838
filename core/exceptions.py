"""
Domain exceptions

All rejected actions raise one of these; the API layer translates them to
HTTP status codes in one place per router.
"""


class HousekeepingException(Exception):
    """Base class for every housekeeping domain error"""
    pass


# ============ ValidationError: rejected before touching the store ============

class InvalidInput(HousekeepingException):
    """Malformed or missing request field"""
    pass


class UnknownRoom(InvalidInput):
    """Room identifier is not in the registry"""
    def __init__(self, room_number):
        self.room_number = room_number
        super().__init__(f"Room {room_number!r} is not a valid room")


class MissingActor(InvalidInput):
    """Mutating action submitted without an actor"""
    def __init__(self, action):
        self.action = action
        super().__init__(f"Action {action} requires a username")


# ============ NotFound ============

class RecordNotFound(HousekeepingException):
    """No record in the state the action expects (e.g. finish with no open start)"""
    def __init__(self, room_number, detail=None):
        self.room_number = room_number
        super().__init__(detail or f"No matching record for room {room_number}")


# ============ Conflict ============

class ActionConflict(HousekeepingException):
    """Guard violation on an existing record (e.g. starting a room twice)"""
    def __init__(self, room_number, detail):
        self.room_number = room_number
        super().__init__(detail)


# ============ Internal ============

class StoreError(HousekeepingException):
    """Persistence or transaction failure; no partial effect is visible"""
    pass
