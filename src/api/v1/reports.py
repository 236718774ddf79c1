from datetime import date

from fastapi import APIRouter

from src.core.dependencies import Refresher, SettingsDep
from src.core.exceptions import NotFoundError, ValidationError
from src.schemas.report import ReportRequest, ReportResponse
from src.services import report as report_service
from src.utils.constants import ComparisonMode, ReportType, VehicleSegment

router = APIRouter(tags=["Reports"])


def parse_report_type(value: str) -> ReportType:
    try:
        return ReportType(value)
    except ValueError:
        raise NotFoundError(f"Unknown report type: {value}")


@router.post("/reports/{report_type}", response_model=ReportResponse)
async def compute_report(report_type: str, data: ReportRequest, settings: SettingsDep):
    return report_service.report_from_request(parse_report_type(report_type), data, settings)


@router.get("/facilities/{facility_id}/reports/{report_type}", response_model=ReportResponse)
async def refresh_report(
    facility_id: str,
    report_type: str,
    refresher: Refresher,
    date_from: date | None = None,
    date_to: date | None = None,
    comparison_mode: ComparisonMode = ComparisonMode.PRECEDING,
    segment: VehicleSegment | None = None,
):
    kind = parse_report_type(report_type)
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must not be after date_to")
    return await refresher.refresh(facility_id, kind, date_from, date_to, comparison_mode, segment)


@router.get("/facilities/{facility_id}/reports/{report_type}/latest", response_model=ReportResponse)
async def get_latest_report(facility_id: str, report_type: str, refresher: Refresher):
    report = refresher.latest(facility_id, parse_report_type(report_type))
    if report is None:
        raise NotFoundError("No report has been computed for this facility yet")
    return report
