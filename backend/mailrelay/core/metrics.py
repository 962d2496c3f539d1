"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY

# Send metrics
try:
    emails_sent_counter = Counter(
        'mailrelay_emails_sent_total',
        'Total number of send attempts by provider and outcome',
        ['provider', 'outcome']
    )
except ValueError:
    emails_sent_counter = REGISTRY._names_to_collectors.get('mailrelay_emails_sent_total')

# Webhook metrics
try:
    webhook_events_counter = Counter(
        'mailrelay_webhook_events_total',
        'Total number of delivery webhooks received by event type and outcome',
        ['event_type', 'outcome']
    )
except ValueError:
    webhook_events_counter = REGISTRY._names_to_collectors.get('mailrelay_webhook_events_total')
