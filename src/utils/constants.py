from enum import Enum


class Tone(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class PaymentMethod(str, Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    CARD = "card"
    QR = "qr"
    WALLET_LINK = "wallet_link"
    SUBSCRIPTION = "subscription"
    OTHER = "other"


class IncomeCategory(str, Enum):
    ROTATION = "rotation"
    SUBSCRIPTIONS = "subscriptions"
    RESERVATIONS = "reservations"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRING = "expiring"
    EXPIRED = "expired"


class VehicleSegment(str, Enum):
    CAR = "AUT"
    MOTORCYCLE = "MOT"
    VAN = "CAM"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ShiftSlot(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    NIGHT = "night"


class ComparisonMode(str, Enum):
    PRECEDING = "preceding"
    QUARTER = "quarter"
    YEAR = "year"


class ReportType(str, Enum):
    OCCUPANCY = "occupancy"
    MOVEMENTS = "movements"
    SHIFTS = "shifts"
    INCOME = "income"
    PAYMENT_METHODS = "payment-methods"
    SUBSCRIPTIONS = "subscriptions"
    COMPARISON = "comparison"
    TRENDS = "trends"
    PROFITABILITY = "profitability"
    QUICK_METRICS = "quick-metrics"


PAYMENT_METHOD_LABELS = {
    PaymentMethod.CASH: "Cash",
    PaymentMethod.TRANSFER: "Transfer",
    PaymentMethod.CARD: "Card",
    PaymentMethod.QR: "QR",
    PaymentMethod.WALLET_LINK: "Wallet link",
    PaymentMethod.SUBSCRIPTION: "Subscription",
    PaymentMethod.OTHER: "Other",
}

INCOME_CATEGORY_LABELS = {
    IncomeCategory.ROTATION: "Rotation",
    IncomeCategory.SUBSCRIPTIONS: "Subscriptions",
    IncomeCategory.RESERVATIONS: "Reservations",
}

SUBSCRIPTION_STATUS_LABELS = {
    SubscriptionStatus.ACTIVE: "Active",
    SubscriptionStatus.EXPIRING: "Expiring",
    SubscriptionStatus.EXPIRED: "Expired",
}

VEHICLE_SEGMENT_LABELS = {
    VehicleSegment.CAR: "Cars",
    VehicleSegment.MOTORCYCLE: "Motorcycles",
    VehicleSegment.VAN: "Vans",
}

SHIFT_SLOT_LABELS = {
    ShiftSlot.MORNING: "Morning shift",
    ShiftSlot.AFTERNOON: "Afternoon shift",
    ShiftSlot.NIGHT: "Night shift",
}

# Estimated processor commission per collected amount
COMMISSION_RATES = {
    PaymentMethod.CASH: 0.0,
    PaymentMethod.TRANSFER: 0.0,
    PaymentMethod.CARD: 0.055,
    PaymentMethod.QR: 0.018,
    PaymentMethod.WALLET_LINK: 0.038,
    PaymentMethod.SUBSCRIPTION: 0.03,
    PaymentMethod.OTHER: 0.03,
}

PHYSICAL_METHODS = frozenset({PaymentMethod.CASH, PaymentMethod.TRANSFER})

# Comparison
STABLE_THRESHOLD = 0.5
ONE_DECIMAL_LIMIT = 99

# Occupancy
HIGH_RISK_PCT = 80
MEDIUM_RISK_PCT = 60
SATURATION_RATIO = 0.9

# Shift efficiency weights
MOVE_WEIGHT = 0.4
INCOME_WEIGHT = 0.3
INCIDENCE_WEIGHT = 0.3
INCIDENCE_TARGET_PCT = 3.0

# Stay duration buckets in hours: <1h, 1-3h, 3-6h, >6h
STAY_BUCKET_EDGES = (1.0, 3.0, 6.0)
STAY_BUCKET_LABELS = ("<1h", "1-3h", "3-6h", ">6h")

# Days-until-expiry buckets for subscriptions
EXPIRY_BUCKETS = (
    ("0-5 days", 0, 5),
    ("6-10 days", 6, 10),
    ("11-15 days", 11, 15),
    ("16-20 days", 16, 20),
    ("20+ days", 21, None),
)
UPCOMING_EXPIRY_LIMIT = 6

COMPARISON_OFFSET_DAYS = {
    ComparisonMode.PRECEDING: 0,
    ComparisonMode.QUARTER: 90,
    ComparisonMode.YEAR: 365,
}

FORECAST_PERIODS = 4
OPTIMISTIC_FACTOR = 1.1
CONSERVATIVE_FACTOR = 0.9

WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

# Quick metrics look back from the start of today
QUICK_WEEK_DAYS = 7
QUICK_MONTHS = 1
