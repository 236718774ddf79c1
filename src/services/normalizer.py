import logging
import unicodedata
from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from src.schemas.analytics import (
    ParkingSession,
    PaymentEvent,
    ShiftRecord,
    Snapshot,
    SubscriptionRecord,
)
from src.schemas.facility import MAX_RANGES_PER_DAY, FacilityMetadata, OperatingRange
from src.utils.constants import (
    IncomeCategory,
    PaymentMethod,
    SubscriptionStatus,
    VehicleSegment,
)
from src.utils.dates import parse_timestamp, to_number

logger = logging.getLogger(__name__)

# Field-name aliases seen across the upstream history/payment views
ID_FIELDS = ("id", "session_id", "hist_id", "ocu_id")
ENTRY_FIELDS = ("entry_time", "entrada", "created_at")
EXIT_FIELDS = ("exit_time", "salida", "completed_at", "paid_at")
FEE_FIELDS = ("fee", "pag_monto", "amount", "monto")
METHOD_FIELDS = ("mepa_metodo", "payment_method", "metodo_pago")
KIND_FIELDS = ("pag_tipo", "payment_type")
ZONE_FIELDS = ("pla_zona", "zone", "zona")
PLATE_FIELDS = (
    "vehiculo_patente",
    "veh_patente",
    "vehicle_plate",
    "patente",
    "placa",
    "plate",
    "license_plate",
)
SEGMENT_FIELDS = ("catv_segmento", "segment", "vehicle_type")

SUBSCRIPTION_KINDS = {"abono_inicial", "subscription_initial"}
RESERVATION_KINDS = {"reserva", "reservation"}


def first_present(row: Mapping[str, Any], fields: Iterable[str]) -> Any:
    for field in fields:
        value = row.get(field)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _fold(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _vehicle_key(row: Mapping[str, Any]) -> str | None:
    plate = _text(first_present(row, PLATE_FIELDS))
    if plate is None:
        return None
    return "".join(plate.split()).upper()


def _segment(row: Mapping[str, Any]) -> VehicleSegment | None:
    raw = first_present(row, SEGMENT_FIELDS)
    template = row.get("plantillas")
    if raw is None and isinstance(template, Mapping):
        raw = template.get("catv_segmento")
    try:
        return VehicleSegment(str(raw).strip().upper()) if raw is not None else None
    except ValueError:
        return None


def normalize_payment_method(raw: Any) -> PaymentMethod:
    if raw is None:
        return PaymentMethod.CASH
    value = _fold(str(raw))
    if not value:
        return PaymentMethod.CASH
    if value in ("efectivo", "cash"):
        return PaymentMethod.CASH
    if "transfer" in value:
        return PaymentMethod.TRANSFER
    if "mercado" in value or value == "mp" or "wallet" in value:
        return PaymentMethod.WALLET_LINK
    if "qr" in value:
        return PaymentMethod.QR
    if "link" in value:
        return PaymentMethod.WALLET_LINK
    if any(token in value for token in ("debito", "credito", "tarjeta", "card", "debit", "credit")):
        return PaymentMethod.CARD
    if any(token in value for token in ("abono", "extension", "subscription")):
        return PaymentMethod.SUBSCRIPTION
    return PaymentMethod.OTHER


def categorize_income(kind: str) -> IncomeCategory:
    value = kind.strip().lower()
    if value in SUBSCRIPTION_KINDS:
        return IncomeCategory.SUBSCRIPTIONS
    if value in RESERVATION_KINDS:
        return IncomeCategory.RESERVATIONS
    return IncomeCategory.ROTATION


def normalize_sessions(rows: Iterable[Any], tz: ZoneInfo) -> list[ParkingSession]:
    sessions: list[ParkingSession] = []
    dropped = 0
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            dropped += 1
            continue
        try:
            entry = parse_timestamp(first_present(row, ENTRY_FIELDS), tz)
            exit_time = parse_timestamp(first_present(row, EXIT_FIELDS), tz)
        except ValueError:
            dropped += 1
            continue
        if entry is None and exit_time is None:
            dropped += 1
            continue

        fee = to_number(first_present(row, FEE_FIELDS))
        sessions.append(
            ParkingSession(
                id=str(first_present(row, ID_FIELDS) or index),
                entry=entry,
                exit=exit_time,
                fee=fee if fee is not None and fee > 0 else 0.0,
                zone=_text(first_present(row, ZONE_FIELDS)),
                vehicle_key=_vehicle_key(row),
                segment=_segment(row),
            )
        )

    if dropped:
        logger.debug("Discarded %d of %d session rows", dropped, dropped + len(sessions))
    return sessions


def normalize_payments(rows: Iterable[Any], tz: ZoneInfo) -> list[PaymentEvent]:
    payments: list[PaymentEvent] = []
    dropped = 0
    for row in rows:
        if not isinstance(row, Mapping):
            dropped += 1
            continue
        timestamp = None
        for fields in (EXIT_FIELDS, ENTRY_FIELDS):
            try:
                timestamp = parse_timestamp(first_present(row, fields), tz)
            except ValueError:
                continue
            if timestamp is not None:
                break
        amount = to_number(first_present(row, FEE_FIELDS))
        if timestamp is None or amount is None or amount <= 0:
            dropped += 1
            continue

        kind = _text(first_present(row, KIND_FIELDS)) or ""
        method_raw = first_present(row, METHOD_FIELDS)
        payments.append(
            PaymentEvent(
                amount=amount,
                method=normalize_payment_method(method_raw if method_raw is not None else kind),
                timestamp=timestamp,
                kind=kind,
                category=categorize_income(kind),
            )
        )

    if dropped:
        logger.debug("Discarded %d of %d payment rows", dropped, dropped + len(payments))
    return payments


def subscription_status(raw: Any) -> SubscriptionStatus:
    value = _fold(str(raw or ""))
    if ("por" in value and "venc" in value) or "expiring" in value:
        return SubscriptionStatus.EXPIRING
    if "venc" in value or "expired" in value:
        return SubscriptionStatus.EXPIRED
    return SubscriptionStatus.ACTIVE


def subscription_type_label(raw: Any) -> str:
    text = _text(raw)
    if text is None:
        return "Undefined"
    return text[0].upper() + text[1:].lower()


def normalize_subscriptions(rows: Iterable[Any], tz: ZoneInfo) -> list[SubscriptionRecord]:
    records: list[SubscriptionRecord] = []
    dropped = 0
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            dropped += 1
            continue
        try:
            start = parse_timestamp(first_present(row, ("fecha_inicio", "start_date", "start")), tz)
            end = parse_timestamp(first_present(row, ("fecha_fin", "end_date", "end")), tz)
        except ValueError:
            dropped += 1
            continue
        if start is None or end is None:
            dropped += 1
            continue

        first = _text(first_present(row, ("conductor_nombre", "holder_first"))) or ""
        last = _text(first_present(row, ("conductor_apellido", "holder_last"))) or ""
        spot = to_number(first_present(row, ("pla_numero", "spot_number", "spot")))
        remaining = to_number(first_present(row, ("dias_restantes", "remaining_days")))
        records.append(
            SubscriptionRecord(
                id=str(first_present(row, ("abo_nro", "id")) or index),
                holder=f"{first} {last}".strip() or "No holder",
                document=_text(first_present(row, ("conductor_dni", "dni"))) or "N/A",
                zone=_text(first_present(row, ("zona", "zone"))) or "General",
                spot=int(spot) if spot is not None else None,
                type=subscription_type_label(first_present(row, ("tipo_abono", "type"))),
                start=start,
                end=end,
                status=subscription_status(first_present(row, ("estado", "status"))),
                remaining_days=int(remaining) if remaining is not None else 0,
            )
        )

    if dropped:
        logger.debug("Discarded %d of %d subscription rows", dropped, dropped + len(records))
    return records


def _assignee_name(row: Mapping[str, Any], assignee_id: str | None) -> str:
    name = _text(row.get("assignee_name"))
    user = row.get("usuario")
    if name is None and isinstance(user, Mapping):
        name = f"{user.get('nombre') or ''} {user.get('apellido') or ''}".strip() or None
    return name or f"Employee {assignee_id or '?'}"


def normalize_shifts(
    rows: Iterable[Any], tz: ZoneInfo, default_hours: float
) -> list[ShiftRecord]:
    shifts: list[ShiftRecord] = []
    dropped = 0
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            dropped += 1
            continue
        day = _text(first_present(row, ("tur_fecha", "date")))
        if day is None:
            dropped += 1
            continue
        start_clock = _text(first_present(row, ("tur_hora_entrada", "start_time"))) or "00:00"
        end_clock = _text(first_present(row, ("tur_hora_salida", "end_time_or_null", "end_time")))
        end_day = _text(first_present(row, ("tur_fecha_salida", "end_date")))
        expected = to_number(first_present(row, ("expected_hours", "tur_horas_esperadas")))
        if expected is None or expected <= 0:
            expected = default_hours

        try:
            start = parse_timestamp(f"{day[:10]}T{start_clock}", tz)
            end = parse_timestamp(f"{(end_day or day)[:10]}T{end_clock}", tz) if end_clock else None
        except ValueError:
            dropped += 1
            continue

        end_derived = end is None
        try:
            if end is None:
                end = start + timedelta(hours=expected)
            elif end < start and end_day is None:
                # Closed after midnight without an explicit closing date
                end += timedelta(days=1)
        except (ValueError, OverflowError):
            dropped += 1
            continue

        assignee_id = _text(first_present(row, ("play_id", "assignee_id")))
        shifts.append(
            ShiftRecord(
                id=str(first_present(row, ("tur_id", "id")) or index),
                assignee_id=assignee_id,
                assignee_name=_assignee_name(row, assignee_id),
                start=start,
                end=end,
                expected_duration_hours=expected,
                end_derived=end_derived,
            )
        )

    if dropped:
        logger.debug("Discarded %d of %d shift rows", dropped, dropped + len(shifts))
    return shifts


def normalize_snapshot(
    tz: ZoneInfo,
    history: Iterable[Any] = (),
    subscriptions: Iterable[Any] = (),
    shifts: Iterable[Any] = (),
    default_shift_hours: float = 8.0,
    errors: Iterable[str] = (),
) -> Snapshot:
    history = list(history)
    return Snapshot(
        sessions=normalize_sessions(history, tz),
        payments=normalize_payments(history, tz),
        subscriptions=normalize_subscriptions(subscriptions, tz),
        shifts=normalize_shifts(shifts, tz, default_shift_hours),
        errors=list(errors),
    )


def normalize_operating_hours(rows: Iterable[Any]) -> list[OperatingRange]:
    ranges: list[OperatingRange] = []
    per_day: dict[int, int] = {}
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        try:
            item = OperatingRange(
                day_of_week=first_present(row, ("dia_semana", "day_of_week")),
                open=str(first_present(row, ("hora_apertura", "open")) or "")[:5],
                close=str(first_present(row, ("hora_cierre", "close")) or "")[:5],
                order=first_present(row, ("orden", "order")) or 1,
            )
        except ValidationError:
            continue
        if per_day.get(item.day_of_week, 0) >= MAX_RANGES_PER_DAY:
            continue
        per_day[item.day_of_week] = per_day.get(item.day_of_week, 0) + 1
        ranges.append(item)
    return ranges


def normalize_segment_capacities(spots: Iterable[Any]) -> dict[VehicleSegment, int]:
    """Count parking spots per vehicle type from the spot inventory."""
    capacities: dict[VehicleSegment, int] = {}
    for row in spots:
        if not isinstance(row, Mapping):
            continue
        segment = _segment(row)
        if segment is not None:
            capacities[segment] = capacities.get(segment, 0) + 1
    return capacities


def _configured_segments(raw: Any) -> dict[VehicleSegment, int]:
    if not isinstance(raw, Mapping):
        return {}
    capacities = {}
    for key, value in raw.items():
        count = to_number(value)
        try:
            segment = VehicleSegment(str(key).strip().upper())
        except ValueError:
            continue
        if count is not None and count > 0:
            capacities[segment] = int(count)
    return capacities


def normalize_facility(
    facility_id: str,
    config: Mapping[str, Any],
    hours: Iterable[Any] = (),
    spots: Iterable[Any] = (),
) -> FacilityMetadata:
    capacity = to_number(first_present(config, ("total_capacity", "est_capacidad", "capacity")))
    reserved = to_number(first_present(config, ("baseline_reserved", "plazas_abonadas")))
    zones = config.get("zone_capacities")
    return FacilityMetadata(
        facility_id=facility_id,
        total_capacity=max(0, int(capacity or 0)),
        baseline_reserved=max(0, int(reserved or 0)),
        zone_capacities=(
            {str(k): int(to_number(v)) for k, v in zones.items() if to_number(v) is not None}
            if isinstance(zones, Mapping)
            else {}
        ),
        segment_capacities=(
            normalize_segment_capacities(spots) or _configured_segments(config.get("segment_capacities"))
        ),
        operating_hours=normalize_operating_hours(hours),
        timezone=_text(first_present(config, ("timezone", "est_zona_horaria"))),
    )
