# Database models
from checkin.models.activity import Activity, ActivityType
from checkin.models.course import Course
from checkin.models.queue_counter import QueueCounter
from checkin.models.registration import PROCESSED_STATUSES, Registration, RegistrationStatus
from checkin.models.queue_channel import QueueChannel
from checkin.models.student_profile import StudentProfile
from checkin.models.check_in_log import CheckInLog

__all__ = [
    "Activity",
    "ActivityType",
    "Course",
    "QueueCounter",
    "PROCESSED_STATUSES",
    "Registration",
    "RegistrationStatus",
    "QueueChannel",
    "StudentProfile",
    "CheckInLog",
]
