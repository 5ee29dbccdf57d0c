"""
桌位可用性查询路由
仅用于页面展示，最终是否可订以提交时的准入判定为准
"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query

from ...config.settings import settings
from ...core.exceptions import ValidationError
from ...schemas.reservation import BookedTable, DayOccupancyEntry, TableAvailabilityResponse
from ...services import AvailabilityService
from ...utils.slots import booked_until, parse_time
from ..deps import get_availability_service

router = APIRouter()


@router.get("/tables", response_model=List[BookedTable])
def booked_tables(
    on_date: date = Query(..., alias="date"),
    time: str = Query(...),
    availability: AvailabilityService = Depends(get_availability_service),
):
    """指定时段被占用的桌子及占用结束时间"""
    parse_time(time)
    return availability.booked_tables_at(on_date, time)


@router.get("/tables/{table_number}", response_model=TableAvailabilityResponse)
def table_availability(
    table_number: int,
    on_date: date = Query(..., alias="date"),
    time: str = Query(...),
    availability: AvailabilityService = Depends(get_availability_service),
):
    """单桌可用性预览"""
    if not 1 <= table_number <= settings.table_count:
        raise ValidationError(f"Table must be between 1 and {settings.table_count}")
    parse_time(time)
    result = availability.check_table(table_number, on_date, time)
    return TableAvailabilityResponse(table_number=table_number, date=on_date, time=time, **result)


@router.get("/day", response_model=List[DayOccupancyEntry])
def day_occupancy(
    on_date: date = Query(..., alias="date"),
    availability: AvailabilityService = Depends(get_availability_service),
):
    """当天所有桌位的占用情况"""
    return [
        DayOccupancyEntry(
            table_number=table_number,
            start_time=start_time,
            booked_until=booked_until(start_time, availability.duration_hours),
        )
        for table_number, start_time in availability.list_all_bookings_on_date(on_date)
    ]
