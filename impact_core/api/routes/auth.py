from fastapi import APIRouter, Depends, HTTPException, status

from impact_core.api.deps import get_registration_service
from impact_core.core.errors import (
    AttemptsExceededError,
    CodeMismatchError,
    NotificationDeliveryError,
    RegistrationConflictError,
    RegistrationNotFoundError,
    ResendTooSoonError,
)
from impact_core.schemas.auth import (
    CodeSentOut,
    RegisteredUserOut,
    RegisterRequest,
    ResendCodeRequest,
    VerifyCodeRequest,
)
from impact_core.services.registration_flow import RegistrationService

router = APIRouter()


@router.post("/register", response_model=CodeSentOut)
async def register(
    payload: RegisterRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> CodeSentOut:
    try:
        email = await service.register(name=payload.name, email=payload.email, password=payload.password)
    except RegistrationConflictError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ResendTooSoonError as exc:
        raise _too_soon(exc) from exc
    except NotificationDeliveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="failed to send verification email; please try again",
        ) from exc

    return CodeSentOut(message="Verification code sent to your email", email=email)


@router.post("/verify-otp", response_model=RegisteredUserOut)
async def verify_otp(
    payload: VerifyCodeRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegisteredUserOut:
    try:
        registration = service.verify(email=payload.email, code=payload.otp)
    except RegistrationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="verification code expired or not found; please register again",
        ) from exc
    except AttemptsExceededError as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="too many failed attempts; please register again",
        ) from exc
    except CodeMismatchError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RegistrationConflictError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return RegisteredUserOut(name=registration.name, email=registration.email)


@router.post("/resend-otp", response_model=CodeSentOut)
async def resend_otp(
    payload: ResendCodeRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> CodeSentOut:
    try:
        await service.resend(email=payload.email)
    except RegistrationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="no pending registration found; please register again",
        ) from exc
    except ResendTooSoonError as exc:
        raise _too_soon(exc) from exc
    except NotificationDeliveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="failed to resend verification code",
        ) from exc

    return CodeSentOut(message="New verification code sent to your email", email=payload.email.strip().lower())


def _too_soon(exc: ResendTooSoonError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=str(exc),
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )
