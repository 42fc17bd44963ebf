"""HTTP server entrypoints for invoice data and PDF generation."""

from __future__ import annotations

import atexit
import errno
import json
import logging
import multiprocessing as mp
import threading
from concurrent.futures import ProcessPoolExecutor, TimeoutError as FutureTimeoutError
from concurrent.futures.process import BrokenProcessPool
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional, Tuple

from .config import (
    LISTEN_BACKLOG,
    MAX_BODY_BYTES as MAX_BODY_BYTES_CONFIG,
    MAX_CONCURRENT_RENDERS,
    MAX_INFLIGHT_RENDERS,
    MAX_PAGES as MAX_PAGES_CONFIG,
    RENDER_QUEUE_TIMEOUT_MS,
    RENDER_TIMEOUT_MS,
)
from .errors import InvoiceError
from .models import InvoiceData
from .pagination import estimate_page_count, max_rows_for_pages

logger = logging.getLogger(__name__)

RENDER_INFLIGHT_SEMAPHORE = threading.BoundedSemaphore(MAX_INFLIGHT_RENDERS)
RENDER_EXECUTOR_LOCK = threading.Lock()
RENDER_EXECUTOR: Optional[ProcessPoolExecutor] = None
BOOKING_STORE_LOCK = threading.Lock()
BOOKING_STORE: Any = None
ValidationError = Tuple[int, Dict[str, Any]]

GENERATION_FAILED = "Could not generate invoice."

DISCONNECT_ERRNOS = {errno.EPIPE, errno.ECONNRESET, errno.ETIMEDOUT}


class DependencyError(RuntimeError):
    """Raised when a required runtime dependency is missing."""


def is_client_disconnect(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS


def load_service_module():
    try:
        from . import service
    except ModuleNotFoundError as exc:
        if exc.name in ("playwright", "jinja2", "dateutil"):
            raise DependencyError(
                f"Missing dependency '{exc.name}'. Install the project with "
                "'pip install -e .' and run 'playwright install chromium'."
            ) from exc
        raise
    return service


def create_render_executor() -> ProcessPoolExecutor:
    return ProcessPoolExecutor(
        max_workers=MAX_CONCURRENT_RENDERS,
        mp_context=mp.get_context("spawn"),
    )


def get_render_executor() -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def restart_render_executor(previous: ProcessPoolExecutor) -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is previous:
            previous.shutdown(wait=False, cancel_futures=True)
            RENDER_EXECUTOR = create_render_executor()
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def submit_render_job(job: Dict[str, Any]):
    render_invoice_job = load_service_module().render_invoice_job
    executor = get_render_executor()
    try:
        return executor.submit(render_invoice_job, job)
    except BrokenProcessPool:
        return restart_render_executor(executor).submit(render_invoice_job, job)


def shutdown_render_executor() -> None:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        executor = RENDER_EXECUTOR
        RENDER_EXECUTOR = None
    if executor is not None:
        executor.shutdown(wait=False, cancel_futures=True)


atexit.register(shutdown_render_executor)


def get_booking_store():
    global BOOKING_STORE
    with BOOKING_STORE_LOCK:
        if BOOKING_STORE is None:
            BOOKING_STORE = load_service_module().load_booking_store()
        return BOOKING_STORE


def error_body(code: str, detail: str, **extra: Any) -> Dict[str, Any]:
    return {"error": code, "detail": detail, **extra}


def parse_json_body(body: bytes) -> Tuple[Optional[Dict[str, Any]], Optional[ValidationError]]:
    try:
        payload = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError:
        return None, (400, error_body("invalid_encoding", "Body must be UTF-8 encoded JSON."))
    except json.JSONDecodeError as exc:
        return None, (
            400,
            error_body("invalid_json", f"{exc.msg} (line {exc.lineno}, column {exc.colno})"),
        )

    if not isinstance(payload, dict):
        return None, (400, error_body("invalid_payload", "JSON root must be an object."))
    return payload, None


def parse_booking_ids(payload: Dict[str, Any]) -> Tuple[List[str], Optional[ValidationError]]:
    ids = payload.get("bookingIds")
    if ids is None:
        return [], None
    if not isinstance(ids, list) or not all(isinstance(i, (str, int)) for i in ids):
        return [], (400, error_body("invalid_payload", "'bookingIds' must be an array of ids."))
    return [str(i) for i in ids], None


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def parse_invoice_data(raw: Any) -> Tuple[Optional[InvoiceData], Optional[ValidationError]]:
    if not isinstance(raw, dict):
        return None, (400, error_body("invalid_payload", "'data' must be an object."))
    try:
        return InvoiceData.from_dict(raw), None
    except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
        return None, (400, error_body("invalid_payload", f"Invalid invoice data: {exc}"))


def encode_invoice(invoice: InvoiceData) -> Tuple[Optional[Dict[str, Any]], Optional[ValidationError]]:
    # Amounts beyond the decimal context cannot be rounded to cents.
    try:
        return invoice.to_dict(), None
    except ArithmeticError as exc:
        return None, (400, error_body("invalid_payload", f"Invoice amounts are out of range: {exc!r}"))


def check_page_budget(invoice: InvoiceData, max_pages: int) -> Optional[ValidationError]:
    estimated_pages = estimate_page_count(invoice.row_count)
    if estimated_pages > max_pages:
        return (
            413,
            error_body(
                "invoice_too_large",
                f"Invoice would render {estimated_pages} pages; maximum is {max_pages}.",
                max_rows=max_rows_for_pages(max_pages),
            ),
        )
    return None


def prepare_invoice(
    payload: Dict[str, Any],
    failure_code: str = "invoice_data_failed",
    failure_detail: str = "Error getting invoice data.",
) -> Tuple[Optional[InvoiceData], Optional[ValidationError]]:
    """Run data preparation, mapping failures to the three caller-visible outcomes.

    Anything other than an empty or unknown booking set becomes a 500 carrying
    ``failure_code`` and ``failure_detail``.
    """
    booking_ids, error = parse_booking_ids(payload)
    if error is not None:
        return None, error
    try:
        service = load_service_module().InvoiceService(store=get_booking_store() if booking_ids else None)
        invoice = service.prepare_invoice_data(booking_ids, payload.get("clientTimezone"))
    except InvoiceError as exc:
        if exc.status_code in (400, 404):
            return None, (exc.status_code, error_body(exc.code, exc.message))
        logger.error("[invoice.data] %s: %s", exc.code, exc.message)
    except Exception:
        logger.exception("[invoice.data] Unexpected failure")
    else:
        return invoice, None
    return None, (500, error_body(failure_code, failure_detail))


class InvoiceHandler(BaseHTTPRequestHandler):
    MAX_BODY_BYTES = MAX_BODY_BYTES_CONFIG
    MAX_PAGES = MAX_PAGES_CONFIG

    def _write_response(
        self,
        status: int,
        content_type: str,
        body: bytes,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        try:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            for name, value in (headers or {}).items():
                self.send_header(name, value)
            self.end_headers()
            self.wfile.write(body)
            return True
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise

    def _send_json(self, status: int, payload: Dict[str, Any]) -> bool:
        body = json.dumps(payload).encode("utf-8")
        return self._write_response(status, "application/json", body)

    def _send_error(self, error: ValidationError) -> None:
        status, payload = error
        self._send_json(status, payload)

    def _read_body(self) -> Optional[bytes]:
        header = self.headers.get("Content-Length")
        if header is None:
            self._send_json(411, error_body("missing_content_length", "Content-Length header is required."))
            return None

        try:
            content_length = int(header)
        except ValueError:
            self._send_json(400, error_body("invalid_content_length", "Content-Length must be an integer."))
            return None

        if content_length <= 0:
            self._send_json(400, error_body("empty_body", "Request body cannot be empty."))
            return None

        if content_length > self.MAX_BODY_BYTES:
            self._send_json(413, error_body("payload_too_large", f"Body exceeds {self.MAX_BODY_BYTES} bytes."))
            return None

        try:
            return self.rfile.read(content_length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def _read_payload(self) -> Optional[Dict[str, Any]]:
        body = self._read_body()
        if body is None:
            return None
        payload, error = parse_json_body(body)
        if error is not None:
            self._send_error(error)
            return None
        return payload

    def do_POST(self) -> None:
        if self.path == "/invoice/data":
            self._handle_data()
        elif self.path == "/invoice/generate":
            self._handle_generate()
        else:
            self._send_json(404, error_body("not_found", "Unsupported endpoint."))

    def _handle_data(self) -> None:
        payload = self._read_payload()
        if payload is None:
            return
        invoice, error = prepare_invoice(payload)
        if error is not None:
            self._send_error(error)
            return
        assert invoice is not None
        self._send_json(200, invoice.to_dict())

    def _handle_generate(self) -> None:
        payload = self._read_payload()
        if payload is None:
            return

        if payload.get("data") is not None:
            invoice, error = parse_invoice_data(payload["data"])
        else:
            invoice, error = prepare_invoice(payload, "render_failed", GENERATION_FAILED)
        if error is None:
            assert invoice is not None
            error = check_page_budget(invoice, self.MAX_PAGES)
        if error is None:
            invoice_doc, error = encode_invoice(invoice)
        if error is not None:
            self._send_error(error)
            return

        job = {
            "data": invoice_doc,
            "signed": parse_flag(payload.get("signed", False)),
            "currencySymbol": payload.get("currencySymbol"),
        }

        acquired = RENDER_INFLIGHT_SEMAPHORE.acquire(timeout=RENDER_QUEUE_TIMEOUT_MS / 1000.0)
        if not acquired:
            retry_after_seconds = max(1, (RENDER_QUEUE_TIMEOUT_MS + 999) // 1000)
            self._send_json(
                503,
                error_body(
                    "server_busy",
                    "Render queue is full; retry shortly.",
                    retry_after_seconds=retry_after_seconds,
                    max_concurrent_renders=MAX_CONCURRENT_RENDERS,
                    max_inflight_renders=MAX_INFLIGHT_RENDERS,
                ),
            )
            return

        future = None
        try:
            future = submit_render_job(job)
            pdf_bytes = future.result(timeout=RENDER_TIMEOUT_MS / 1000.0)
        except FutureTimeoutError:
            if future is not None:
                future.cancel()
            logger.error("[invoice.generate] Invoice %s exceeded %d ms", invoice.invoice_number, RENDER_TIMEOUT_MS)
            self._send_json(504, error_body("render_timeout", GENERATION_FAILED))
            return
        except BrokenProcessPool:
            restart_render_executor(get_render_executor())
            self._send_json(503, error_body("render_pool_restarting", "Render worker pool restarted; retry shortly."))
            return
        except Exception:
            logger.exception("[invoice.generate] Invoice %s failed", invoice.invoice_number)
            self._send_json(500, error_body("render_failed", GENERATION_FAILED))
            return
        finally:
            RENDER_INFLIGHT_SEMAPHORE.release()

        self._write_response(
            200,
            "application/pdf",
            pdf_bytes,
            {"Content-Disposition": f'attachment; filename="invoice_{invoice.invoice_number}.pdf"'},
        )

    def do_GET(self) -> None:
        if self.path in ("/", "/health", "/healthz", "/ready"):
            self._send_json(200, {"status": "ok"})
            return
        self._send_json(404, error_body("not_found", "Unsupported endpoint."))

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            raise

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class InvoiceHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = LISTEN_BACKLOG


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    load_service_module()
    get_render_executor()
    server = InvoiceHTTPServer((host, port), InvoiceHandler)
    logger.info("Invoice API server listening on http://%s:%d", host, port)
    server.serve_forever()
