from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import EmailStr
import logging

from app.core.database import get_db
from app.schemas.application import ApplicationCreate, ApplicationStatusResponse
from app.services.application_service import ApplicationService


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/signup", response_model=ApplicationStatusResponse, status_code=status.HTTP_201_CREATED)
async def submit_application(
    application_data: ApplicationCreate,
    db: AsyncSession = Depends(get_db)
):
    """Submit a business application for platform review."""
    application = await ApplicationService(db).submit(application_data.model_dump())
    return application


@router.get("/status-by-email", response_model=ApplicationStatusResponse)
async def get_status_by_email(
    email: EmailStr = Query(...),
    db: AsyncSession = Depends(get_db)
):
    """Latest application submitted with this business email."""
    return await ApplicationService(db).get_latest_by_email(email)


@router.get("/{application_id}/status", response_model=ApplicationStatusResponse)
async def get_application_status(
    application_id: str,
    db: AsyncSession = Depends(get_db)
):
    return await ApplicationService(db).get_application(application_id)
