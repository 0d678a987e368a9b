import enum


class Role(str, enum.Enum):
    NONE = 'none'
    WORDMASTER = 'wordmaster'
    GUESSER = 'guesser'


class RoomStatus(str, enum.Enum):
    WAITING = 'waiting'
    STARTING = 'starting'
    IN_GAME = 'in-game'
    COMPLETED = 'completed'


class GameStatus(str, enum.Enum):
    ACTIVE = 'active'
    COMPLETED = 'completed'


class RoundState(str, enum.Enum):
    OPEN_AWAITING_CLUE = 'open_awaiting_clue'
    CLUE_SUBMITTED = 'clue_submitted'
    ENDED = 'ended'


class ResolutionTrigger(str, enum.Enum):
    TIMER_EXPIRED = 'timer_expired'
    WORDMASTER_BLOCKED = 'wordmaster_blocked'
    GUESSES_EXHAUSTED = 'guesses_exhausted'


# Status changes an admin may force through the REST surface
ROOM_TRANSITIONS = {
    RoomStatus.WAITING: {RoomStatus.STARTING},
    RoomStatus.STARTING: {RoomStatus.WAITING, RoomStatus.IN_GAME},
    RoomStatus.IN_GAME: {RoomStatus.COMPLETED},
    RoomStatus.COMPLETED: {RoomStatus.WAITING},
}
