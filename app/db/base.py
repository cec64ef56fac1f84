# Garante o registro de TODAS as models no mesmo registry
from app.db.base_class import Base # noqa
from app.models.audit_log import AuditLog # noqa
from app.models.availability import AvailabilityWindow # noqa
from app.models.calendar import TutorCalendar # noqa
from app.models.notification import Notification # noqa
from app.models.registration import CourseRegistration # noqa
from app.models.tutor_session import SessionParticipant, TutorSession # noqa
