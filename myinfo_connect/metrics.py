from prometheus_client import Counter, Histogram, Gauge

# Histogram for MyInfo upstream call latency (seconds)
# endpoint: token, userinfo, jwks
myinfo_upstream_call_latency_seconds = Histogram(
    'myinfo_upstream_call_latency_seconds',
    'Latency of MyInfo upstream calls in seconds',
    ['endpoint']
)

# Counter for upstream calls, labeled by endpoint and outcome
# status: success, error
myinfo_upstream_call_total = Counter(
    'myinfo_upstream_call_total',
    'Total MyInfo upstream calls',
    ['endpoint', 'status']
)

# Counter for callback outcomes
# outcome: success or the error code sent back to the site
myinfo_callback_total = Counter(
    'myinfo_callback_total',
    'Total MyInfo callbacks handled',
    ['outcome']
)

# Gauge for pending authorization sessions held in this process
myinfo_active_sessions = Gauge(
    'myinfo_active_sessions',
    'Pending MyInfo authorization sessions'
)

__all__ = [
    'myinfo_upstream_call_latency_seconds',
    'myinfo_upstream_call_total',
    'myinfo_callback_total',
    'myinfo_active_sessions',
]
