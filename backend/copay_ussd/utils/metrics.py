# /copay_ussd/utils/metrics.py

from prometheus_client import Counter, Histogram

# This file defines all Prometheus metrics used for application monitoring.
# Centralizing them here makes them easy to find and manage.

# Conversation Metrics
ussd_requests_counter = Counter('ussd_requests_total', 'USSD requests handled', ['step', 'session_state'])
ussd_failures_counter = Counter('ussd_gateway_failures_total', 'USSD requests that ended in the generic failure response', ['error_type'])
corrupt_sessions_counter = Counter('ussd_corrupt_sessions_total', 'Stored sessions discarded as corrupt', ['reason'])
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])

# Payment Metrics
payment_initiations_counter = Counter('payment_initiations_total', 'Payment initiations from USSD', ['status'])

# Security Metrics
pin_verifications_counter = Counter('pin_verifications_total', 'PIN verification attempts', ['status'])

# Performance Metrics
cache_operations = Counter('cache_operations_total', 'Session store operations', ['operation', 'status'])
database_operations_counter = Counter('database_operations_total', 'Database operations', ['operation', 'status'])
