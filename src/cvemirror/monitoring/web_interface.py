#!/usr/bin/env python3
"""
Web interface for CVE Mirror
Provides the query API plus health and metrics endpoints
"""
import json
import time
import logging
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from urllib.parse import urlparse, parse_qs, unquote
from typing import Any, Dict, Optional

from cvemirror.core.query import QueryExecutor
from cvemirror.monitoring.health_check import HealthChecker
from cvemirror.monitoring.metrics import export_metrics, record_query
from cvemirror.utils.error_handler import (
    ErrorContext, NotFoundError, ValidationError, handle_error
)
from cvemirror.utils.validation import validate_query_params

logger = logging.getLogger(__name__)

CVES_PATH = '/api/cves'


class MirrorHTTPServer(ThreadingHTTPServer):
    """HTTP server carrying the query executor and health checker for its handlers"""

    def __init__(self, server_address, executor: QueryExecutor,
                 health_checker: Optional[HealthChecker] = None):
        self.executor = executor
        self.health_checker = health_checker
        super().__init__(server_address, MirrorRequestHandler)


class MirrorRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the CVE Mirror API"""

    server: MirrorHTTPServer

    def do_GET(self):
        """Handle GET requests"""
        parsed_path = urlparse(self.path)
        path = parsed_path.path.rstrip('/') or '/'
        start_time = time.time()
        endpoint = path
        status = 500

        try:
            if path == CVES_PATH:
                endpoint = CVES_PATH
                status = self._handle_search(parse_qs(parsed_path.query))
            elif path.startswith(CVES_PATH + '/'):
                endpoint = CVES_PATH + '/<id>'
                status = self._handle_detail(unquote(path[len(CVES_PATH) + 1:]))
            elif path == '/api/health':
                status = self._handle_health()
            elif path == '/metrics':
                status = self._handle_metrics()
            else:
                endpoint = 'other'
                status = self._send_json_response(404, {"error": "Not found"})

        except Exception as e:
            handle_error(e, ErrorContext(operation=f"GET {path}", component="web_interface"))
            status = self._send_json_response(500, {"error": "Internal server error"})

        finally:
            record_query(endpoint, status, time.time() - start_time)

    def _handle_search(self, query_params: Dict[str, Any]) -> int:
        try:
            query = validate_query_params(query_params)
        except ValidationError as e:
            return self._send_json_response(400, {
                "error": "Invalid query parameters",
                "details": e.details()
            })

        page = self.server.executor.search(query)
        return self._send_json_response(200, page.to_response())

    def _handle_detail(self, cve_id: str) -> int:
        try:
            record = self.server.executor.get(cve_id)
        except NotFoundError:
            return self._send_json_response(404, {"error": "CVE not found"})
        return self._send_json_response(200, record.to_response())

    def _handle_health(self) -> int:
        """Handle health check endpoint"""
        if self.server.health_checker is None:
            return self._send_json_response(200, {"status": "healthy"})
        health_data = self.server.health_checker.endpoint()
        return self._send_json_response(health_data['status_code'], health_data['data'])

    def _handle_metrics(self) -> int:
        """Handle metrics endpoint"""
        return self._send_response(200, export_metrics(), 'text/plain; version=0.0.4')

    def _send_json_response(self, status_code: int, data: Any) -> int:
        return self._send_response(status_code, json.dumps(data, default=str), 'application/json')

    def _send_response(self, status_code: int, content: str, content_type: str) -> int:
        body = content.encode('utf-8')
        self.send_response(status_code)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)
        return status_code

    def log_message(self, format, *args):
        """Route access logs through logging instead of stderr"""
        logger.info(f"{self.address_string()} - {format % args}")


def create_server(host: str, port: int, executor: QueryExecutor,
                  health_checker: Optional[HealthChecker] = None) -> MirrorHTTPServer:
    return MirrorHTTPServer((host, port), executor, health_checker)


def start_web_interface(executor: QueryExecutor, health_checker: Optional[HealthChecker] = None,
                        host: str = 'localhost', port: int = 5000) -> None:
    """Start the web interface server and block until interrupted"""
    httpd = create_server(host, port, executor, health_checker)

    logger.info(f"Starting CVE Mirror API on http://{host}:{port}")
    logger.info("Available endpoints:")
    logger.info("  GET  /api/cves - Query CVEs")
    logger.info("  GET  /api/cves/<id> - CVE detail")
    logger.info("  GET  /api/health - Health check")
    logger.info("  GET  /metrics - Prometheus metrics")

    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down web interface...")
    finally:
        httpd.server_close()
