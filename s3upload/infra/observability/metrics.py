from prometheus_client import Counter, Histogram, make_asgi_app

# 低基数标签：使用路由模板（如 /api/v1/uploads/{bucket}/{key}），避免动态 key 导致高基数
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

# outcome: stored / failed / cancelled
UPLOADS = Counter(
    "uploads_total",
    "File fields processed by the storage engine",
    ["outcome"],
)

UPLOADED_BYTES = Counter(
    "uploaded_bytes_total",
    "Bytes streamed to object storage",
)

# outcome: removed / failed
REMOVALS = Counter(
    "upload_removals_total",
    "Stored objects removed after a failed request or on demand",
    ["outcome"],
)

# /metrics 端点 ASGI 应用
metrics_app = make_asgi_app()
