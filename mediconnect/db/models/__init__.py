# Models package (re-export feature modules for stable imports)
from .users.user import User
from .appointments.appointment import Appointment
from .calendar.doctor_calendar import DoctorCalendar, CalendarDay, WorkingHours, TimeSlot
from .payments.payment import Payment
from .notifications.notification import Notification

__all__ = [
    "User",
    "Appointment",
    "DoctorCalendar",
    "CalendarDay",
    "WorkingHours",
    "TimeSlot",
    "Payment",
    "Notification",
]
