"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Credit metrics
credits_issued_total = Counter(
    "credits_issued_total",
    "Total credits issued",
    labelnames=["credit_type"],  # cancellation, refund, promotion, admin_adjustment, migration
)

credit_amount_issued_total = Counter(
    "credit_amount_issued_total",
    "Total credit amount issued in minor currency units",
    labelnames=["credit_type"],
)

credit_amount_redeemed_total = Counter(
    "credit_amount_redeemed_total",
    "Total credit amount redeemed against appointments",
)

insufficient_credit_total = Counter(
    "insufficient_credit_total",
    "Credit redemptions rejected for insufficient balance",
)

credits_expired_total = Counter(
    "credits_expired_total",
    "Total credits swept as expired",
)

# Booking metrics
booking_conflicts_total = Counter(
    "booking_conflicts_total",
    "Booking attempts rejected because the resource was already booked",
    labelnames=["resource_type"],
)

bookings_created_total = Counter(
    "bookings_created_total",
    "Total bookings created",
    labelnames=["resource_type"],
)

bookings_cancelled_total = Counter(
    "bookings_cancelled_total",
    "Total bookings cancelled",
    labelnames=["resource_type", "credited"],  # credited: true, false
)
