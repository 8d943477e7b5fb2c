"""Tests for the /metrics HTTP endpoint and its background server."""

from __future__ import annotations

import httpx
import pytest
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.testclient import TestClient

from sql_exporter.metrics_server import MetricsServer, create_metrics_app, parse_listen_address
from sql_exporter.sink import PrometheusSink


class TestParseListenAddress:
    @pytest.mark.parametrize(
        "addr,expected",
        [
            (":8080", ("0.0.0.0", 8080)),
            ("127.0.0.1:9237", ("127.0.0.1", 9237)),
            ("localhost:0", ("localhost", 0)),
            ("[::1]:8080", ("::1", 8080)),
        ],
    )
    def test_valid_addresses(self, addr: str, expected: tuple[str, int]) -> None:
        assert parse_listen_address(addr) == expected

    @pytest.mark.parametrize(
        "addr,message",
        [
            ("8080", "no port"),
            ("localhost:http", "invalid port"),
            (":", "invalid port"),
            (":70000", "out-of-range"),
        ],
    )
    def test_invalid_addresses(self, addr: str, message: str) -> None:
        with pytest.raises(ValueError, match=message):
            parse_listen_address(addr)


class TestMetricsApp:
    """Tests for the ASGI app serving the sink's registry."""

    def test_serves_registered_metrics(self) -> None:
        sink = PrometheusSink()
        sink.register("orders_total", "Number of orders", {"region": "eu"})
        sink.observe("orders_total", 42.0)
        client = TestClient(create_metrics_app(sink))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"] == CONTENT_TYPE_LATEST
        assert 'orders_total{region="eu"} 42.0' in response.text

    def test_registered_but_never_observed_reports_zero(self) -> None:
        sink = PrometheusSink()
        sink.register("pending", "", {})
        client = TestClient(create_metrics_app(sink))

        assert "pending 0.0" in client.get("/metrics").text

    def test_reflects_latest_value(self) -> None:
        sink = PrometheusSink()
        sink.register("m", "", {})
        client = TestClient(create_metrics_app(sink))

        sink.observe("m", 1.0)
        first = client.get("/metrics").text
        sink.observe("m", 2.0)
        second = client.get("/metrics").text

        assert "m 1.0" in first
        assert "m 2.0" in second

    def test_unknown_path(self) -> None:
        client = TestClient(create_metrics_app(PrometheusSink()))

        assert client.get("/").status_code == 404

    def test_post_not_allowed(self) -> None:
        client = TestClient(create_metrics_app(PrometheusSink()))

        assert client.post("/metrics").status_code == 405


@pytest.mark.integration
class TestMetricsServer:
    """Tests for MetricsServer lifecycle against a real socket."""

    def test_start_serve_and_shutdown(self) -> None:
        sink = PrometheusSink()
        sink.register("up_metric", "", {})
        sink.observe("up_metric", 1.0)
        server = MetricsServer(host="127.0.0.1", port=0)

        server.start(create_metrics_app(sink))
        try:
            assert server.is_running
            port = server._server.servers[0].sockets[0].getsockname()[1]  # type: ignore[union-attr]
            response = httpx.get(f"http://127.0.0.1:{port}/metrics", timeout=5.0)
            assert "up_metric 1.0" in response.text
        finally:
            assert server.shutdown(timeout=5.0) is True

        assert not server._thread.is_alive()  # type: ignore[union-attr]

    def test_request_stop_then_shutdown(self) -> None:
        server = MetricsServer(host="127.0.0.1", port=0)
        server.start(create_metrics_app(PrometheusSink()))

        server.request_stop()

        assert server.shutdown(timeout=5.0) is True

    def test_shutdown_without_start(self) -> None:
        server = MetricsServer(host="127.0.0.1", port=9)

        server.request_stop()

        assert server.shutdown() is True
        assert not server.is_running

    def test_port_in_use_raises(self) -> None:
        first = MetricsServer(host="127.0.0.1", port=0)
        first.start(create_metrics_app(PrometheusSink()))
        try:
            port = first._server.servers[0].sockets[0].getsockname()[1]  # type: ignore[union-attr]
            second = MetricsServer(host="127.0.0.1", port=port)

            with pytest.raises(RuntimeError, match="failed to start"):
                second.start(create_metrics_app(PrometheusSink()))
        finally:
            first.shutdown(timeout=5.0)
