"""Security audit logging module"""
import logging
import uuid
from fastapi import Request


# Configure security logger
security_logger = logging.getLogger("security_audit")
security_logger.setLevel(logging.INFO)


def get_request_id(request: Request) -> str:
    """Get or create request ID for correlation"""
    if hasattr(request.state, 'request_id'):
        return request.state.request_id
    return str(uuid.uuid4())[:8]


def log_auth_event(
    event_type: str,
    email: str = None,
    user_id: str = None,
    success: bool = True,
    details: str = None,
    ip_address: str = None,
    request_id: str = None
):
    """Log authentication-related events"""
    status = "SUCCESS" if success else "FAILURE"
    message = f"AUTH:{event_type} | status={status} | request_id={request_id or 'N/A'}"

    if email:
        message += f" | email={email}"
    if user_id:
        message += f" | user_id={user_id}"
    if ip_address:
        message += f" | ip={ip_address}"
    if details:
        message += f" | details={details}"

    if success:
        security_logger.info(message)
    else:
        security_logger.warning(message)


def log_claim_attempt(
    user_id: str,
    reference_code: str,
    outcome: str,
    request_id: str = None
):
    """Log guest booking claim attempts (success and every rejection)"""
    message = (
        f"CLAIM | user={user_id} | ref={reference_code} | outcome={outcome}"
        f" | request_id={request_id or 'N/A'}"
    )
    if outcome == "claimed":
        security_logger.info(message)
    else:
        security_logger.warning(message)


def log_admin_action(
    admin_id: str,
    action: str,
    target_id: str,
    details: str = None,
    request_id: str = None
):
    """Log admin mutations on bookings/reviews/settings for audit trail"""
    message = f"ADMIN:{action} | target={target_id} | by={admin_id} | request_id={request_id or 'N/A'}"
    if details:
        message += f" | details={details}"
    security_logger.info(message)
