import asyncio
import logging
from collections.abc import Mapping
from datetime import date
from typing import Any

import httpx

from src.config import Settings
from src.schemas.analytics import Snapshot
from src.schemas.facility import FacilityMetadata
from src.schemas.report import ReportBase
from src.services import normalizer
from src.services.report import build_context, build_report, facility_zone
from src.utils.constants import ComparisonMode, ReportType, VehicleSegment

logger = logging.getLogger(__name__)


def extract_rows(payload: Any, keys: tuple[str, ...]) -> list[Any]:
    """Rows from either a bare JSON array or the first list found under ``keys``."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


class UpstreamClient:
    """Read-only client for the backend that owns history, subscriptions, shifts and facility data."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self.client = client
        self.settings = settings

    async def _get(self, path: str, facility_id: str) -> tuple[Any, str | None]:
        try:
            response = await self.client.get(path, params={"est_id": facility_id})
            response.raise_for_status()
            return response.json(), None
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Fetching %s for facility %s failed: %s", path, facility_id, exc)
            return None, f"{path}: {exc}"

    async def fetch_rows(
        self, path: str, facility_id: str, keys: tuple[str, ...]
    ) -> tuple[list[Any], str | None]:
        payload, error = await self._get(path, facility_id)
        return extract_rows(payload, keys), error

    async def fetch_facility(self, facility_id: str) -> tuple[FacilityMetadata, list[str]]:
        settings = self.settings
        (config, config_error), (hours, hours_error), (spots, spots_error) = await asyncio.gather(
            self._get(settings.upstream_facility_path, facility_id),
            self.fetch_rows(settings.upstream_hours_path, facility_id, ("horarios", "data")),
            self.fetch_rows(settings.upstream_spots_path, facility_id, ("plazas", "data")),
        )
        if isinstance(config, Mapping) and isinstance(config.get("estacionamiento"), Mapping):
            config = config["estacionamiento"]
        facility = normalizer.normalize_facility(
            facility_id, config if isinstance(config, Mapping) else {}, hours, spots
        )
        return facility, [e for e in (config_error, hours_error, spots_error) if e]

    async def fetch_snapshot(self, facility_id: str, facility: FacilityMetadata) -> Snapshot:
        settings = self.settings
        (history, history_error), (subscriptions, subs_error), (shifts, shifts_error) = await asyncio.gather(
            self.fetch_rows(settings.upstream_history_path, facility_id, ("history", "data")),
            self.fetch_rows(settings.upstream_subscriptions_path, facility_id, ("abonos", "data")),
            self.fetch_rows(settings.upstream_shifts_path, facility_id, ("turnos", "data")),
        )
        return normalizer.normalize_snapshot(
            facility_zone(facility, settings),
            history=history,
            subscriptions=subscriptions,
            shifts=shifts,
            default_shift_hours=settings.default_shift_hours,
            errors=[e for e in (history_error, subs_error, shifts_error) if e],
        )


class ReportRefresher:
    """
    Fetches a fresh snapshot and rebuilds one report per (facility, report type).

    Refreshes are never queued. Each call takes a new generation number and
    only the newest generation may publish its result; a refresh that finishes
    after a newer one started is discarded instead of overwriting it.
    """

    def __init__(self, upstream: UpstreamClient, settings: Settings):
        self.upstream = upstream
        self.settings = settings
        self._generations: dict[tuple[str, ReportType], int] = {}
        self._latest: dict[tuple[str, ReportType], ReportBase] = {}

    def latest(self, facility_id: str, report_type: ReportType) -> ReportBase | None:
        return self._latest.get((facility_id, report_type))

    async def refresh(
        self,
        facility_id: str,
        report_type: ReportType,
        date_from: date | None = None,
        date_to: date | None = None,
        comparison_mode: ComparisonMode = ComparisonMode.PRECEDING,
        segment: VehicleSegment | None = None,
    ) -> ReportBase:
        key = (facility_id, report_type)
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation

        facility, facility_errors = await self.upstream.fetch_facility(facility_id)
        snapshot = await self.upstream.fetch_snapshot(facility_id, facility)
        if facility_errors:
            snapshot = snapshot.model_copy(update={"errors": facility_errors + snapshot.errors})

        context = build_context(
            report_type, facility, self.settings, date_from, date_to, comparison_mode, segment
        )
        report = build_report(report_type, snapshot, context)

        if self._generations[key] == generation:
            self._latest[key] = report
        else:
            logger.debug(
                "Discarding superseded %s report for facility %s (generation %d < %d)",
                report_type.value,
                facility_id,
                generation,
                self._generations[key],
            )
        return report
