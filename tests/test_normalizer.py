import logging
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from src.services import normalizer
from src.utils.constants import IncomeCategory, PaymentMethod, SubscriptionStatus, VehicleSegment


class TestSessions:
    def test_aliases_are_resolved(self):
        rows = [
            {
                "hist_id": 7,
                "entrada": "2024-01-01T10:00:00",
                "salida": "2024-01-01T12:00:00",
                "pag_monto": "150",
                "veh_patente": " ab 123 cd ",
                "pla_zona": "A",
                "plantillas": {"catv_segmento": "mot"},
            }
        ]
        [session] = normalizer.normalize_sessions(rows, UTC)

        assert session.id == "7"
        assert session.entry == datetime(2024, 1, 1, 10, tzinfo=UTC)
        assert session.duration_hours == 2.0
        assert session.fee == 150.0
        assert session.vehicle_key == "AB123CD"
        assert session.zone == "A"
        assert session.segment == VehicleSegment.MOTORCYCLE

    def test_malformed_rows_are_dropped(self, caplog):
        caplog.set_level(logging.DEBUG, logger="src.services.normalizer")
        rows = [
            {"id": 1, "entry_time": "2024-01-01T10:00:00"},
            {"id": 2, "entry_time": "yesterday"},
            {"id": 3, "fee": 10},
            "not a row",
        ]
        sessions = normalizer.normalize_sessions(rows, UTC)

        assert [s.id for s in sessions] == ["1"]
        assert "Discarded 3 of 4 session rows" in caplog.text

    def test_invalid_fee_becomes_zero(self):
        rows = [
            {"id": 1, "entry_time": "2024-01-01T10:00:00", "fee": "n/a"},
            {"id": 2, "entry_time": "2024-01-01T10:00:00", "fee": -5},
        ]

        assert [s.fee for s in normalizer.normalize_sessions(rows, UTC)] == [0.0, 0.0]

    def test_offset_timestamps_convert_to_facility_zone(self):
        rows = [{"id": 1, "entry_time": "2024-01-01T10:00:00-03:00"}]
        [session] = normalizer.normalize_sessions(rows, UTC)

        assert session.entry == datetime(2024, 1, 1, 13, tzinfo=UTC)

    def test_out_of_range_timestamp_drops_only_that_row(self):
        rows = [
            {"id": 1, "entry_time": "2024-01-01T10:00:00"},
            {"id": 2, "entry_time": "0001-01-01T00:00:00+00:00"},
            {"id": 3, "exit_time": "9999-12-31T23:59:59"},
        ]
        tz = ZoneInfo("America/Argentina/Buenos_Aires")

        assert [s.id for s in normalizer.normalize_sessions(rows, tz)] == ["1"]


class TestPayments:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, PaymentMethod.CASH),
            ("", PaymentMethod.CASH),
            ("Efectivo", PaymentMethod.CASH),
            ("Transferencia bancaria", PaymentMethod.TRANSFER),
            ("Mercado Pago", PaymentMethod.WALLET_LINK),
            ("Link de pago", PaymentMethod.WALLET_LINK),
            ("QR", PaymentMethod.QR),
            ("Tarjeta de Crédito", PaymentMethod.CARD),
            ("abono_extension", PaymentMethod.SUBSCRIPTION),
            ("bitcoin", PaymentMethod.OTHER),
        ],
    )
    def test_method_normalization(self, raw, expected):
        assert normalizer.normalize_payment_method(raw) == expected

    def test_income_categories(self):
        assert normalizer.categorize_income("abono_inicial") == IncomeCategory.SUBSCRIPTIONS
        assert normalizer.categorize_income("Reserva") == IncomeCategory.RESERVATIONS
        assert normalizer.categorize_income("") == IncomeCategory.ROTATION

    def test_payment_events(self):
        rows = [
            {"entrada": "2024-01-01T10:00:00", "salida": "2024-01-01T12:00:00", "pag_monto": 100},
            {"paid_at": "2024-01-02T09:00:00", "amount": 300, "pag_tipo": "abono_inicial"},
            {"salida": "2024-01-02T09:00:00", "pag_monto": 0},
            {"salida": "garbage", "pag_monto": 50},
        ]
        payments = normalizer.normalize_payments(rows, UTC)

        assert len(payments) == 2
        assert payments[0].timestamp == datetime(2024, 1, 1, 12, tzinfo=UTC)
        assert payments[0].method == PaymentMethod.CASH
        assert payments[1].method == PaymentMethod.SUBSCRIPTION
        assert payments[1].category == IncomeCategory.SUBSCRIPTIONS

    def test_malformed_exit_falls_back_to_entry(self):
        rows = [{"entry_time": "2024-01-03T09:00:00", "exit_time": "not a date", "fee": 40}]
        [payment] = normalizer.normalize_payments(rows, UTC)

        assert payment.timestamp == datetime(2024, 1, 3, 9, tzinfo=UTC)
        assert payment.amount == 40.0


class TestSubscriptions:
    def test_statuses(self):
        assert normalizer.subscription_status("Por vencer") == SubscriptionStatus.EXPIRING
        assert normalizer.subscription_status("Vencido") == SubscriptionStatus.EXPIRED
        assert normalizer.subscription_status("Activo") == SubscriptionStatus.ACTIVE
        assert normalizer.subscription_status(None) == SubscriptionStatus.ACTIVE

    def test_records(self, subscription_rows):
        records = normalizer.normalize_subscriptions(subscription_rows + [{"abo_nro": 9}], UTC)

        assert [r.id for r in records] == ["1", "2", "3"]
        assert records[0].holder == "Ana Paz"
        assert records[0].type == "Mensual"
        assert records[1].holder == "No holder"
        assert records[1].type == "Semanal"
        assert records[1].zone == "General"
        assert records[2].status == SubscriptionStatus.EXPIRED

    def test_missing_type(self):
        assert normalizer.subscription_type_label(None) == "Undefined"


class TestShifts:
    def test_overnight_shift_rolls_into_next_day(self):
        rows = [{"tur_id": 1, "tur_fecha": "2024-01-01", "tur_hora_entrada": "22:00", "tur_hora_salida": "06:00"}]
        [shift] = normalizer.normalize_shifts(rows, UTC, 8.0)

        assert shift.start == datetime(2024, 1, 1, 22, tzinfo=UTC)
        assert shift.end == datetime(2024, 1, 2, 6, tzinfo=UTC)
        assert not shift.end_derived

    def test_open_shift_uses_expected_hours(self):
        rows = [{"tur_id": 1, "tur_fecha": "2024-01-01", "tur_hora_entrada": "08:00", "play_id": 5}]
        [shift] = normalizer.normalize_shifts(rows, UTC, 6.0)

        assert shift.end == datetime(2024, 1, 1, 14, tzinfo=UTC)
        assert shift.end_derived
        assert shift.assignee_name == "Employee 5"

    def test_assignee_from_user(self, shift_rows):
        shifts = normalizer.normalize_shifts(shift_rows + [{"tur_id": 3}], UTC, 8.0)

        assert [s.assignee_name for s in shifts] == ["Ana Paz", "Employee 7"]

    def test_unrepresentable_end_drops_only_that_shift(self, shift_rows):
        rows = shift_rows + [
            {"tur_id": 3, "tur_fecha": "2024-01-03", "tur_hora_entrada": "08:00", "expected_hours": 1e12},
            {"tur_id": 4, "tur_fecha": "9999-12-31", "tur_hora_entrada": "22:00", "tur_hora_salida": "06:00"},
        ]
        shifts = normalizer.normalize_shifts(rows, UTC, 8.0)

        assert [s.id for s in shifts] == ["1", "2"]


def test_snapshot_survives_out_of_range_rows(history_rows):
    tz = ZoneInfo("America/Argentina/Buenos_Aires")
    history = history_rows + [{"id": 99, "entry_time": "0001-01-01T00:00:00+00:00", "fee": 10}]
    snapshot = normalizer.normalize_snapshot(
        tz, history=history, shifts=[{"tur_fecha": "2024-01-01", "expected_hours": 1e12}]
    )

    assert len(snapshot.sessions) == len(history_rows)
    assert len(snapshot.payments) == 4
    assert snapshot.shifts == []


class TestFacility:
    def test_capacity_and_operating_hours(self):
        config = {"est_capacidad": "120", "plazas_abonadas": 10, "zone_capacities": {"A": "40", "B": None}}
        hours = [
            {"dia_semana": 1, "hora_apertura": "08:00:00", "hora_cierre": "20:00:00", "orden": 1},
            {"dia_semana": 1, "hora_apertura": "21:00", "hora_cierre": "20:00", "orden": 2},
            {"dia_semana": 9, "hora_apertura": "08:00", "hora_cierre": "09:00"},
        ] + [
            {"dia_semana": 2, "hora_apertura": f"0{h}:00", "hora_cierre": f"0{h}:30", "orden": min(h, 3)}
            for h in range(1, 5)
        ]
        facility = normalizer.normalize_facility("12", config, hours)

        assert facility.facility_id == "12"
        assert facility.total_capacity == 120
        assert facility.baseline_reserved == 10
        assert facility.zone_capacities == {"A": 40}
        assert [(r.day_of_week, r.open) for r in facility.operating_hours] == [
            (1, "08:00"),
            (2, "01:00"),
            (2, "02:00"),
            (2, "03:00"),
        ]

    def test_segment_capacities_from_spot_inventory(self):
        spots = [
            {"pla_numero": 1, "plantillas": {"catv_segmento": "AUT"}},
            {"pla_numero": 2, "plantillas": {"catv_segmento": "AUT"}},
            {"pla_numero": 3, "catv_segmento": "cam"},
            {"pla_numero": 4, "plantillas": None},
            "broken",
        ]
        facility = normalizer.normalize_facility("12", {"segment_capacities": {"MOT": 9}}, spots=spots)

        assert facility.segment_capacities == {VehicleSegment.CAR: 2, VehicleSegment.VAN: 1}

    def test_segment_capacities_from_config(self):
        config = {"segment_capacities": {"aut": "12", "MOT": 3, "BUS": 4, "CAM": None}}
        facility = normalizer.normalize_facility("12", config)

        assert facility.segment_capacities == {VehicleSegment.CAR: 12, VehicleSegment.MOTORCYCLE: 3}

    def test_missing_config_defaults(self):
        facility = normalizer.normalize_facility("12", {})

        assert facility.total_capacity == 0
        assert facility.segment_capacities == {}
        assert facility.operating_hours == []
        assert facility.is_operating(datetime(2024, 1, 1, 3, tzinfo=UTC))
