"""
Registration Confirmation Routes - relays confirmation links to new members by email
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..config import MailerConfig
from ..email_templates import TemplateRenderer
from ..exceptions import RenderError, TransportError
from ..schemas import Accepted, ConfirmationRequest, OutgoingEmail
from ..services.gmail_transport import MailTransport
from ..utils.sanitization import mask_email

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Confirmation"])

SUCCESS_MESSAGE = (
    "Please check your email to confirm your registration. "
    "If it isn't there, check your spam folder or contact an admin"
)
FAILURE_MESSAGE = "Unable to send the registration confirmation to your email! Please try again later"
SERVER_ERROR_MESSAGE = "A server-side error occurred"


def get_mail_transport(request: Request) -> MailTransport:
    return request.app.state.mail_transport


def get_template_renderer(request: Request) -> TemplateRenderer:
    return request.app.state.template_renderer


def get_mailer_config(request: Request) -> MailerConfig:
    return request.app.state.mailer_config


def describe_validation_error(error: ValidationError) -> str:
    """Flatten pydantic errors into one line, e.g. 'destEmail: Field required'"""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return "; ".join(parts) or "Invalid request body"


def _json(status_code: int, message: str, more_info=None) -> JSONResponse:
    content = {"message": message}
    if more_info is not None:
        content["moreInfo"] = more_info
    return JSONResponse(status_code=status_code, content=content)


# CORS preflights are answered by the middleware before reaching this route
@router.api_route(
    "/{path:path}", methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
)
async def send_registration_confirmation(
    request: Request,
    transport: MailTransport = Depends(get_mail_transport),
    renderer: TemplateRenderer = Depends(get_template_renderer),
    config: MailerConfig = Depends(get_mailer_config),
):
    """
    Send the registration confirmation email to a new member.

    Expects {"destEmail": ..., "confirmationURL": ...} and answers with the
    provider's delivery outcome in moreInfo.
    """
    try:
        body = await request.json()
        data = ConfirmationRequest.model_validate(body)
        html = await renderer.render_confirmation(data.confirmation_url)
    except ValidationError as e:
        message = describe_validation_error(e)
        logger.warning(f"Invalid confirmation request: {message}")
        return _json(400, message)
    except (ValueError, RenderError) as e:
        # ValueError covers malformed JSON and undecodable bodies
        logger.warning(f"Could not prepare confirmation email: {e}")
        return _json(400, str(e) or "An error occurred")

    email = OutgoingEmail(
        sender=config.sender or "",
        to=data.dest_email,
        subject=config.subject,
        html=html,
    )

    try:
        outcome = await transport.send(email)
    except Exception as e:
        # Raw provider errors stay in the logs; the caller only sees the error type
        logger.error(
            f"❌ Confirmation email to {mask_email(data.dest_email)} failed: {e}", exc_info=True
        )
        more_info = {"error": type(e).__name__}
        if isinstance(e, TransportError) and e.smtp_code is not None:
            more_info["code"] = e.smtp_code
        return _json(500, SERVER_ERROR_MESSAGE, more_info)

    if isinstance(outcome, Accepted):
        return _json(200, SUCCESS_MESSAGE, outcome.info)

    # Gmail accepts mail for any syntactically valid address, so this mostly
    # happens with providers that refuse recipients up front
    return _json(400, FAILURE_MESSAGE, outcome.info)
