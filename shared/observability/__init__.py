from .setup import setup_observability
from .metrics import (
    shop_checkout_total,
    shop_checkout_duration_seconds,
    shop_external_id_conflicts_total,
    shop_webhook_events_total,
    shop_notifications_total,
)
