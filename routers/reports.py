from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from datetime import date, datetime, timezone
from typing import Optional

from models import User
from schemas import DuesReport, PeriodDashboard
from deps import require_feature
from services.csv_builder import build_dues_csv
from services.reports import dues_report, period_dashboard

router = APIRouter(prefix="/reports", tags=["reports"])

reports_access = require_feature("reports")


def enabled_kinds(user: User) -> tuple:
    kinds = []
    if user.has_feature("due_customers") or user.has_feature("normal_customers"):
        kinds.append("customer")
    if user.has_feature("wholesalers"):
        kinds.append("wholesaler")
    return tuple(kinds)


def check_range(start_date: Optional[date], end_date: Optional[date]):
    if start_date and end_date and end_date < start_date:
        raise HTTPException(422, "endDate must not be before startDate")


@router.get("/dues", response_model=DuesReport)
async def dues(user: User = Depends(reports_access)):
    return await dues_report(user.id, enabled_kinds(user))


@router.get("/dues.csv")
async def dues_csv(user: User = Depends(reports_access)):
    report = await dues_report(user.id, enabled_kinds(user))
    stamp = datetime.now(tz=timezone.utc).strftime("%Y%m%d")
    return Response(
        content=build_dues_csv(report),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="dues-{stamp}.csv"'},
    )


@router.get("/customers/dashboard", response_model=PeriodDashboard)
async def customers_dashboard(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user: User = Depends(reports_access),
):
    if "customer" not in enabled_kinds(user):
        raise HTTPException(403, "Feature not enabled: due_customers / normal_customers")
    check_range(start_date, end_date)
    return await period_dashboard(user.id, "customer", start_date, end_date)


@router.get("/wholesalers/dashboard", response_model=PeriodDashboard)
async def wholesalers_dashboard(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user: User = Depends(reports_access),
):
    if "wholesaler" not in enabled_kinds(user):
        raise HTTPException(403, "Feature not enabled: wholesalers")
    check_range(start_date, end_date)
    return await period_dashboard(user.id, "wholesaler", start_date, end_date)
