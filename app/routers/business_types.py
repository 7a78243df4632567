from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.deal import BusinessTypeResponse
from app.services.commission_rates import CommissionRateService

router = APIRouter()


@router.get("/business-types", response_model=List[BusinessTypeResponse], summary="Commission rate table")
async def list_business_types(db: AsyncSession = Depends(get_db)):
    return await CommissionRateService(db).list_business_types()
