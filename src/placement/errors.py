"""Exceptions raised by the placement workflow and override reconciler."""


class LevelingError(Exception):
    """Base class for leveling workflow errors."""
    pass


class CycleNotFoundError(LevelingError):
    """Raised when a cycle id does not exist in the store."""

    def __init__(self, cycle_id: str):
        super().__init__(f"Leveling cycle not found: {cycle_id}")
        self.cycle_id = cycle_id


class CycleFinalizedError(LevelingError):
    """Raised when a finalized cycle would be mutated."""

    def __init__(self, cycle_id: str, action: str = "modify"):
        super().__init__(f"Cannot {action}: leveling cycle {cycle_id} is finalized")
        self.cycle_id = cycle_id


class InvalidPhaseTransitionError(LevelingError):
    """Raised for transitions the phase state machine does not allow."""
    pass


class FinalizeNotConfirmedError(LevelingError):
    """Raised when finalize is invoked without operator confirmation."""
    pass


class UnknownSectionError(LevelingError):
    """Raised when a section name is not in the configured ordered set."""

    def __init__(self, section: str):
        super().__init__(f"Unknown section: {section}")
        self.section = section


class UnknownStudentError(LevelingError):
    """Raised when a student is not part of the placement map."""

    def __init__(self, student_id: str):
        super().__init__(f"Student not in placement map: {student_id}")
        self.student_id = student_id


class EmergencyMoveError(LevelingError):
    """Raised when an emergency section move is not allowed."""
    pass
