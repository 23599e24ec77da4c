from fastapi import FastAPI
from fastapi.testclient import TestClient

from s3upload.infra.observability.metrics import metrics_app
from s3upload.infra.observability.middleware import MetricsMiddleware


def build_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(MetricsMiddleware)

    @app.delete("/api/v1/uploads/{bucket}/{key:path}")
    def delete_upload(bucket: str, key: str):
        return {"bucket": bucket, "key": key}

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.mount("/metrics", metrics_app)
    return app


def test_metrics_route_template_label():
    app = build_app()
    client = TestClient(app)
    # trigger a request on a templated route
    resp = client.delete("/api/v1/uploads/bucket/some/deep/key.png")
    assert resp.status_code == 200

    # fetch metrics and assert low-cardinality route label is used
    m = client.get("/metrics")
    assert m.status_code == 200
    metrics_text = m.text
    assert "http_requests_total" in metrics_text
    assert 'route="/api/v1/uploads/{bucket}/{key:path}"' in metrics_text
    assert "some/deep/key.png" not in metrics_text


def test_latency_metric_present():
    app = build_app()
    client = TestClient(app)
    client.get("/health")
    m = client.get("/metrics")
    assert m.status_code == 200
    assert "http_request_duration_seconds" in m.text


def test_upload_counters_exported():
    client = TestClient(build_app())
    metrics_text = client.get("/metrics").text
    assert "uploads_total" in metrics_text
    assert "uploaded_bytes_total" in metrics_text


def test_request_id_propagation():
    app = build_app()
    client = TestClient(app)

    # auto-generate when missing
    r1 = client.get("/health")
    rid1 = r1.headers.get("X-Request-Id")
    assert rid1 is not None and len(rid1) > 0

    # echo when provided
    rid = "req-abc-123"
    r2 = client.get("/health", headers={"X-Request-Id": rid})
    assert r2.headers.get("X-Request-Id") == rid
