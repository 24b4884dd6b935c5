from prometheus_client import Counter, Histogram

# Business Metrics
shop_checkout_total = Counter(
    "shop_checkout_total",
    "Total checkouts processed",
    ["status"] # Labels: 'success', 'gateway_error', 'error'
)

shop_checkout_duration_seconds = Histogram(
    "shop_checkout_duration_seconds",
    "Checkout duration in seconds"
)

shop_external_id_conflicts_total = Counter(
    "shop_external_id_conflicts_total",
    "External id collisions retried at checkout"
)

shop_webhook_events_total = Counter(
    "shop_webhook_events_total",
    "Payment webhooks received",
    ["outcome"] # Labels: 'applied', 'duplicate', 'ignored'
)

shop_notifications_total = Counter(
    "shop_notifications_total",
    "Customer notifications attempted",
    ["kind", "result"] # Labels: kind='order_created'|'payment_success'|'verification', result='sent'|'failed'
)
