import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session

from .application.principal import Principal
from .application.status import Role
from .application.services.appointments_service import AppointmentsService
from .application.services.calendar_service import CalendarService
from .application.services.notification_dispatcher import NotificationDispatcher
from .application.services.payments_service import PaymentsService
from .application.services.refunds_service import RefundsService
from .application.services.webhook_service import WebhookService
from .config import settings
from .database import get_session
from .exceptions import AuthenticationError, AuthorizationError
from .infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from .infrastructure.persistence.sqlalchemy.repositories.calendar_repository_sql import SqlCalendarRepository
from .infrastructure.persistence.sqlalchemy.repositories.notifications_repository_sql import SqlNotificationsRepository
from .infrastructure.persistence.sqlalchemy.repositories.payments_repository_sql import SqlPaymentsRepository
from .infrastructure.persistence.sqlalchemy.repositories.user_repository_sql import SqlUserRepository
from .utils import decode_jwt_token

logger = logging.getLogger(__name__)

oauth2_scheme = HTTPBearer(auto_error=False)


# ------------------------
# Authentication
# ------------------------
def get_current_principal(credentials: Optional[HTTPAuthorizationCredentials] = Depends(oauth2_scheme)) -> Principal:
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    payload = decode_jwt_token(credentials.credentials)
    if not payload:
        logger.warning("JWT token decode failed - invalid or expired token")
        raise AuthenticationError("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token: missing user ID")
    try:
        role = Role(payload.get("role"))
    except ValueError:
        raise AuthenticationError("Invalid token: missing or unknown role")
    return Principal(id=str(user_id), role=role)


def require_role(*roles: Role):
    def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise AuthorizationError(f"Only {' or '.join(r.value for r in roles)} users can access this resource")
        return principal
    return checker


def request_metadata(request: Request) -> dict:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
        "request_id": request.headers.get("x-request-id"),
    }


# ------------------------
# Services
# ------------------------
def get_dispatcher(request: Request, session: Session = Depends(get_session)) -> NotificationDispatcher:
    return NotificationDispatcher(
        notifications=SqlNotificationsRepository(session),
        users=SqlUserRepository(session),
        email=request.app.state.email_sender,
        events=request.app.state.event_bus,
    )


def get_refunds_service(
    request: Request,
    session: Session = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> RefundsService:
    return RefundsService(
        payments=SqlPaymentsRepository(session),
        appointments=SqlAppointmentsRepository(session),
        gateway=request.app.state.payment_gateway,
        dispatcher=dispatcher,
        audit=request.app.state.audit_logger,
    )


def get_appointments_service(
    session: Session = Depends(get_session),
    refunds: RefundsService = Depends(get_refunds_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AppointmentsService:
    return AppointmentsService(
        repo=SqlAppointmentsRepository(session),
        user_repo=SqlUserRepository(session),
        payments=SqlPaymentsRepository(session),
        refunds=refunds,
        dispatcher=dispatcher,
    )


def get_calendar_service(
    session: Session = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> CalendarService:
    return CalendarService(
        calendars=SqlCalendarRepository(session),
        appointments=SqlAppointmentsRepository(session),
        dispatcher=dispatcher,
    )


def get_payments_service(
    request: Request,
    session: Session = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> PaymentsService:
    return PaymentsService(
        payments=SqlPaymentsRepository(session),
        appointments=SqlAppointmentsRepository(session),
        gateway=request.app.state.payment_gateway,
        dispatcher=dispatcher,
        currency=settings.PAYMENT_CURRENCY,
        audit=request.app.state.audit_logger,
    )


def get_webhook_service(
    request: Request,
    session: Session = Depends(get_session),
    payments_service: PaymentsService = Depends(get_payments_service),
    refunds: RefundsService = Depends(get_refunds_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> WebhookService:
    return WebhookService(
        verifier=request.app.state.webhook_verifier,
        payments=SqlPaymentsRepository(session),
        appointments=SqlAppointmentsRepository(session),
        payments_service=payments_service,
        refunds=refunds,
        dispatcher=dispatcher,
    )


def get_notifications_repo(session: Session = Depends(get_session)) -> SqlNotificationsRepository:
    return SqlNotificationsRepository(session)
