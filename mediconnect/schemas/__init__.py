# Schemas package (re-export feature modules for stable imports)
from .common.common import *
from .appointments.appointment import *
from .calendar.calendar import *
from .payments.payment import *
from .notifications.notification import *
