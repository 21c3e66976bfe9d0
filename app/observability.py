import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# Lifecycle metrics
FORKS_TOTAL = Counter(
    "document_forks_total",
    "New-version forks by outcome",
    ["outcome"],
)
ISSUANCE_TOTAL = Counter(
    "document_issuance_total",
    "Issuance attempts by outcome",
    ["outcome"],
)
PDF_DOWNLOADS_TOTAL = Counter(
    "document_pdf_downloads_total",
    "PDF downloads by serving path",
    ["source"],
)
PDF_INTEGRITY_MISMATCH_TOTAL = Counter(
    "document_pdf_integrity_mismatch_total",
    "Locked PDFs whose bytes no longer match the recorded checksum",
)
TOKEN_RESOLUTIONS_TOTAL = Counter(
    "access_token_resolutions_total",
    "External access token resolutions by outcome",
    ["outcome"],
)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route = request.scope.get("route")
            # Route template keeps label cardinality bounded.
            path = getattr(route, "path", None) or "unmatched"
            REQUEST_COUNT.labels(request.method, path, str(status_code)).inc()
            REQUEST_LATENCY.labels(request.method, path).observe(
                time.perf_counter() - start
            )
