"""
Group Call Exceptions

Custom exceptions for group call errors.
"""


class GroupCallError(Exception):
    """Base exception for group call errors"""
    pass


class InvalidRequestError(GroupCallError):
    """Raised when a room id, call id or call type is missing or malformed"""
    pass


class NotFoundError(GroupCallError):
    """Raised when a referenced room or call does not exist"""
    pass


class RoomNotFoundError(NotFoundError):
    """Raised when the room is not found"""
    pass


class CallNotFoundError(NotFoundError):
    """Raised when the group call is not found"""
    pass


class ForbiddenError(GroupCallError):
    """Raised when the actor may not act on the room or call"""
    pass


class NotParticipantError(ForbiddenError):
    """Raised when the user is not a participant of the room or call"""
    pass


class WriteConflictError(GroupCallError):
    """Raised by the session store when the stored version moved since it was read"""
    pass


class CallInternalError(GroupCallError):
    """Raised when a write still conflicts after all retries"""
    pass
