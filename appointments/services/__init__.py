# appointments/services package
#
# Public entry points are re-exported here:
#
#   from appointments.services import BookingService, SlotLockManager
#   from appointments.services import StatusTransitionEngine, ActorContext
#   from appointments.services import get_client_appointments

from appointments.services.booking_service import BookingService  # noqa: F401

from appointments.services.slot_lock_service import (  # noqa: F401
    SlotLockGrant,
    SlotLockManager,
)

from appointments.services.status_service import (  # noqa: F401
    ALLOWED_TRANSITIONS,
    ActorContext,
    StatusTransitionEngine,
)

from appointments.services.penalty_service import (  # noqa: F401
    CancellationPenaltyEvaluator,
    PenaltyStatus,
)

from appointments.services.reminder_service import (  # noqa: F401
    ReminderQuery,
    dispatch_due_reminders,
)

from appointments.services.notification_service import AppointmentNotifier  # noqa: F401

from appointments.services.client_appointments_service import (  # noqa: F401
    get_barber_appointments,
    get_client_appointments,
)
