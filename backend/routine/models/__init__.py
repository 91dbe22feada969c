from routine.models.activity_log import ActivityLog  # noqa: F401
from routine.models.class_assignment import (  # noqa: F401
    ClassAssignment,
    ClassType,
    LabGroup,
    LabGroupType,
    ResourceKind,
    ResourceOccupancy,
    ResourceSlotLock,
)
from routine.models.program import Program, ProgramSection  # noqa: F401
from routine.models.room import Room, RoomType  # noqa: F401
from routine.models.subject import Subject  # noqa: F401
from routine.models.teacher import Teacher  # noqa: F401
from routine.models.time_slot import TimeSlot  # noqa: F401
