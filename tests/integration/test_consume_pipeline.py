"""
Integration tests for the complete CDC consume pipeline.

Tests cover:
- End-to-end message processing into metrics and the event log
- Error handling and recovery for bad messages
- Broker error handling
- Application lifecycle and exit codes
"""

import json
import logging
from unittest.mock import Mock, patch

import pytest
from confluent_kafka import KafkaError

from cdc_sink.config import (
    AppConfig,
    KafkaConfig,
    LoggingConfig,
    MonitoringConfig,
    SupervisorConfig,
)
from cdc_sink.consumer import (
    ConsumeLoop,
    EventDecoder,
    RawMessage,
    ShutdownToken,
    SupervisorState,
)
from cdc_sink.core.errors import BrokerConnectionError
from cdc_sink.core.logging import EventLogger
from cdc_sink.main import CDCSinkApplication, main
from cdc_sink.monitoring import Instrumentation


def count(metrics, table, operation):
    return metrics.sample("cdc_events_total", table_name=table, operation=operation)


def raw(payload, offset=0):
    return RawMessage(payload=payload, topic="cdc_events", partition=0, offset=offset)


def broker_error(code, fatal=False):
    error = Mock()
    error.code.return_value = code
    error.fatal.return_value = fatal
    error.__str__ = Mock(return_value=f"KafkaError code {code}")
    return error


@pytest.fixture
def event_logger():
    return EventLogger()


@pytest.fixture
def make_loop(metrics, event_logger, fake_client_class):
    def _make(messages=(), decoder=None):
        client = fake_client_class(messages=list(messages))
        loop = ConsumeLoop(
            client=client,
            metrics=metrics,
            instrumentation=Instrumentation(metrics, event_logger),
            decoder=decoder,
            event_logger=event_logger,
            poll_timeout=0.01,
        )
        return loop, client

    return _make


@pytest.mark.integration
class TestConsumePipeline:
    """Integration tests for per-message handling."""

    def test_insert_event(self, make_loop, metrics, caplog):
        loop, _ = make_loop()
        payload = (
            b'{"database":"app_db","table":"users","type":"INSERT","isDdl":false,'
            b'"ts":1700000000000,"data":[{"id":1}],"old":[]}'
        )

        with caplog.at_level(logging.INFO):
            loop.handle_message(raw(payload))

        assert count(metrics, "users", "insert") == 1
        assert metrics.sample(
            "cdc_events_processing_seconds_count", table_name="users", operation="insert"
        ) == 1
        assert metrics.sample("kafka_messages_received_total") == 1

        record = next(r for r in caplog.records if r.getMessage() == "CDC Event Processed")
        assert record.table_name == "users"
        assert record.operation == "insert"
        assert record.data == [{"id": 1}]
        assert record.data_count == 1

    def test_ddl_event_is_skipped(self, make_loop, metrics, caplog):
        loop, _ = make_loop()

        with caplog.at_level(logging.INFO):
            loop.handle_message(raw(b'{"type":"UPDATE","isDdl":true}'))

        assert count(metrics, "unknown", "update") == 0
        assert metrics.get_metrics_text().count("cdc_events_total{") == 0
        assert any(r.getMessage() == "Skipping DDL event" for r in caplog.records)
        assert not any(r.getMessage() == "CDC Event Processed" for r in caplog.records)
        assert loop.stats.events_skipped == 1

    def test_unknown_operation_is_counted(self, make_loop, metrics):
        loop, _ = make_loop()

        loop.handle_message(raw(b'{"table":"orders","type":"TRUNCATE"}'))

        assert count(metrics, "orders", "unknown") == 1

    def test_empty_payload_is_not_decoded(self, make_loop, metrics, caplog):
        decoder = Mock(wraps=EventDecoder())
        loop, _ = make_loop(decoder=decoder)

        with caplog.at_level(logging.WARNING):
            loop.handle_message(raw(b""))
            loop.handle_message(raw(None))

        decoder.decode.assert_not_called()
        assert metrics.sample("kafka_messages_received_total") == 2
        assert loop.stats.empty_messages == 2
        assert any(r.getMessage() == "Received empty message" for r in caplog.records)

    def test_malformed_message_does_not_stop_processing(self, make_loop, metrics, caplog):
        loop, _ = make_loop()

        with caplog.at_level(logging.ERROR):
            loop.handle_message(raw(b"invalid json", offset=1))
        loop.handle_message(raw(b'{"table":"users","type":"INSERT"}', offset=2))

        error = next(r for r in caplog.records if r.getMessage() == "Failed to parse CDC event")
        assert error.raw_message == "invalid json"
        assert error.offset == 1
        assert count(metrics, "users", "insert") == 1
        assert loop.stats.decode_failures == 1
        assert loop.stats.events_recorded == 1

    def test_infinite_timestamp_is_processed(self, make_loop, metrics):
        loop, _ = make_loop()

        loop.handle_message(raw(b'{"table":"users","type":"INSERT","ts":1e400}', offset=1))
        loop.handle_message(raw(b'{"table":"users","type":"INSERT"}', offset=2))

        assert count(metrics, "users", "insert") == 2
        assert loop.stats.events_recorded == 2

    def test_unexpected_decoder_error_does_not_stop_processing(self, make_loop, metrics, caplog):
        decoder = Mock(wraps=EventDecoder())
        decoder.decode.side_effect = [OverflowError("cannot convert float infinity"), EventDecoder().decode(
            b'{"table":"users","type":"UPDATE"}'
        )]
        loop, _ = make_loop(decoder=decoder)

        with caplog.at_level(logging.ERROR):
            loop.handle_message(raw(b'{"ts":1e400}', offset=1))
            loop.handle_message(raw(b'{"table":"users","type":"UPDATE"}', offset=2))

        assert count(metrics, "users", "update") == 1
        assert loop.stats.decode_failures == 1
        assert any(getattr(r, "error_type", None) == "OverflowError" for r in caplog.records)

    def test_log_failure_does_not_stop_processing(self, make_loop, metrics, event_logger):
        loop, _ = make_loop()
        payload = b'{"table":"users","type":"DELETE"}'

        with patch.object(event_logger, "log_processed", side_effect=[OSError("disk"), None]):
            loop.handle_message(raw(payload))
            loop.handle_message(raw(payload))

        assert count(metrics, "users", "delete") == 2
        assert loop.stats.recording_failures == 1
        assert loop.stats.events_recorded == 1


@pytest.mark.integration
class TestConsumeLoopRun:
    """Integration tests for the polling loop."""

    async def test_processes_messages_in_order(self, make_loop, mock_kafka_message, event_logger):
        tables = ["t1", "t2", "t3", "t4"]
        messages = [
            mock_kafka_message(json.dumps({"table": t, "type": "INSERT"}).encode(), offset=i)
            for i, t in enumerate(tables)
        ]
        loop, client = make_loop(messages)
        token = ShutdownToken()
        client.stop_when_drained(token.cancel)

        with patch.object(event_logger, "log_processed") as log_processed:
            await loop.run(token)

        assert [c.args[0].table for c in log_processed.call_args_list] == tables
        assert loop.running is False

    async def test_skips_partition_eof_and_recoverable_errors(
        self, make_loop, mock_kafka_message, metrics
    ):
        messages = [
            mock_kafka_message(None, error=broker_error(KafkaError._PARTITION_EOF)),
            mock_kafka_message(None, error=broker_error(KafkaError._TRANSPORT)),
            mock_kafka_message(b'{"table":"users","type":"UPDATE"}'),
        ]
        loop, client = make_loop(messages)
        token = ShutdownToken()
        client.stop_when_drained(token.cancel)

        await loop.run(token)

        assert count(metrics, "users", "update") == 1
        assert metrics.sample("kafka_messages_received_total") == 1

    async def test_fatal_error_leaves_loop(self, make_loop, mock_kafka_message):
        messages = [mock_kafka_message(None, error=broker_error(KafkaError._FATAL, fatal=True))]
        loop, _ = make_loop(messages)

        with pytest.raises(BrokerConnectionError):
            await loop.run(ShutdownToken())

        assert loop.running is False

    async def test_stops_when_cancelled(self, make_loop):
        loop, client = make_loop()
        token = ShutdownToken()
        token.cancel()

        await loop.run(token)

        assert loop.stats.messages_received == 0


def make_config(**supervisor):
    return AppConfig(
        kafka=KafkaConfig(poll_timeout_seconds=0.01),
        supervisor=SupervisorConfig(**supervisor),
        logging=LoggingConfig(log_to_file=False),
        monitoring=MonitoringConfig(enabled=False),
    )


@pytest.mark.integration
class TestApplication:
    """Integration tests for application wiring."""

    async def test_runs_until_shutdown(self, fake_client_class, mock_kafka_message, metrics):
        client = fake_client_class(
            messages=[mock_kafka_message(b'{"table":"users","type":"INSERT"}')],
            connect_failures=1,
        )
        app = CDCSinkApplication(
            make_config(retry_delay_seconds=0), client=client, metrics=metrics
        )
        client.stop_when_drained(app.request_shutdown)

        state = await app.run(install_signals=False)

        assert state == SupervisorState.TERMINATED
        assert count(metrics, "users", "insert") == 1
        assert client.connect_calls == 2

    async def test_out_of_range_timestamp_keeps_service_running(
        self, fake_client_class, mock_kafka_message, metrics
    ):
        client = fake_client_class(messages=[
            mock_kafka_message(b'{"table":"users","type":"INSERT","ts":1e400}', offset=1),
            mock_kafka_message(b'{"table":"users","type":"INSERT"}', offset=2),
        ])
        app = CDCSinkApplication(make_config(), client=client, metrics=metrics)
        client.stop_when_drained(app.request_shutdown)

        state = await app.run(install_signals=False)

        assert state == SupervisorState.TERMINATED
        assert count(metrics, "users", "insert") == 2
        assert client.connect_calls == 1
        assert client.close_calls == 1

    async def test_health_reflects_supervisor_state(self, fake_client_class, metrics):
        app = CDCSinkApplication(make_config(), client=fake_client_class(), metrics=metrics)

        ready = await app.health_checker.run_health_checks(include_readiness=True)
        assert not ready.healthy
        assert ready.checks["_consumer_ready"]["state"] == "idle"

        app.supervisor.state = SupervisorState.RUNNING
        ready = await app.health_checker.run_health_checks(include_readiness=True)
        assert ready.healthy

    async def test_main_exits_with_error_when_broker_unavailable(self, fake_client_class):
        client = fake_client_class(connect_failures=100)
        config = make_config(max_retries=3, retry_delay_seconds=0)

        with patch("cdc_sink.main.KafkaBrokerClient", return_value=client), \
                patch.object(CDCSinkApplication, "install_signal_handlers"):
            exit_code = await main(config)

        assert exit_code == 1
        assert client.connect_calls == 3
