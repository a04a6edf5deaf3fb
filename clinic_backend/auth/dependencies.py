from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clinic_backend.auth import jwt_handler
from clinic_backend.core.errors import NotFoundError, StoreError
from clinic_backend.models.doctor import Doctor
from clinic_backend.models.user import ROLE_ADMIN
from clinic_backend.services.container import ClinicServices, get_services

ROLE_DOCTOR = "doctor"

security = HTTPBearer()


@dataclass(frozen=True)
class Principal:
    subject: str
    role: str


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or not role:
        raise HTTPException(status_code=401, detail="Invalid token subject")
    return Principal(subject=str(subject), role=role)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal


def get_current_doctor(
    principal: Principal = Depends(get_current_principal),
    services: ClinicServices = Depends(get_services),
) -> Doctor:
    if principal.role != ROLE_DOCTOR:
        raise HTTPException(status_code=403, detail="Doctor access required")
    try:
        doctor = services.registry.get(int(principal.subject))
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid token subject") from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=401, detail="Doctor not found") from exc
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    if doctor.archived:
        raise HTTPException(status_code=403, detail="Doctor account is archived")
    return doctor
