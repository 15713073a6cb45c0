"""
Main entry point for the CDC event sink.

This module provides:
- Application initialization and configuration
- Service wiring: broker client, pipeline, supervisor, monitoring
- Signal-driven graceful shutdown
- Process exit codes
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import AppConfig, load_configuration
from .consumer import (
    ConnectionSupervisor,
    ConsumeLoop,
    EventClassifier,
    EventDecoder,
    KafkaBrokerClient,
    RetryPolicy,
    ShutdownToken,
    SupervisorState,
)
from .core.errors import ConfigurationError, RetryExhaustedError
from .core.logging import EventLogger, setup_logging
from .monitoring import HealthChecker, Instrumentation, MetricsRegistry, MonitoringService

logger = logging.getLogger(__name__)


class CDCSinkApplication:
    """
    Main CDC sink application.

    Orchestrates all services and manages application lifecycle.
    """

    def __init__(
        self,
        config: AppConfig,
        client: Optional[KafkaBrokerClient] = None,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self.config = config
        self.metrics = metrics or MetricsRegistry()
        self.client = client or KafkaBrokerClient(config.kafka)

        event_logger = EventLogger()
        self.consume_loop = ConsumeLoop(
            client=self.client,
            metrics=self.metrics,
            instrumentation=Instrumentation(self.metrics, event_logger),
            decoder=EventDecoder(),
            classifier=EventClassifier(),
            event_logger=event_logger,
            poll_timeout=config.kafka.poll_timeout_seconds,
        )
        self.supervisor = ConnectionSupervisor(
            client=self.client,
            consume_loop=self.consume_loop,
            topic=config.kafka.topic,
            retry_policy=RetryPolicy(
                max_attempts=config.supervisor.max_retries,
                delay_seconds=config.supervisor.retry_delay_seconds,
            ),
        )

        self.health_checker = HealthChecker()
        self.health_checker.add_check(self._consumer_health)
        self.health_checker.add_check(self._consumer_ready, readiness=True)
        self.monitoring_service = MonitoringService(
            config.monitoring, self.metrics, self.health_checker
        )

        self.shutdown_token: Optional[ShutdownToken] = None

    async def _consumer_health(self) -> Dict[str, Any]:
        state = self.supervisor.state
        return {
            "status": "unhealthy" if state == SupervisorState.TERMINATED else "healthy",
            "state": state.value,
            "stats": self.consume_loop.stats.to_dict(),
        }

    async def _consumer_ready(self) -> Dict[str, Any]:
        state = self.supervisor.state
        return {
            "status": "healthy" if state == SupervisorState.RUNNING else "unhealthy",
            "state": state.value,
        }

    def install_signal_handlers(self) -> None:
        """Cancel the shutdown token on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        token = self.shutdown_token

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown...")
            loop.call_soon_threadsafe(token.cancel)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def run(self, install_signals: bool = True) -> SupervisorState:
        """Run until shutdown; raises RetryExhaustedError if Kafka never comes up."""
        self.shutdown_token = ShutdownToken()
        if install_signals:
            self.install_signal_handlers()

        await self.monitoring_service.start()
        try:
            return await self.supervisor.run(self.shutdown_token)
        finally:
            await self.cleanup()

    def request_shutdown(self) -> None:
        if self.shutdown_token is not None:
            self.shutdown_token.cancel()

    async def cleanup(self) -> None:
        """Clean up all resources."""
        logger.info("Cleaning up application resources...")
        await self.monitoring_service.stop()


async def main(config: AppConfig) -> int:
    """Run the application and map the outcome to a process exit code."""
    logger.info("Starting CDC Consumer Service", extra={"config": config.to_dict()})

    app = CDCSinkApplication(config)
    try:
        await app.run()
    except RetryExhaustedError as e:
        logger.error(f"Kafka consumer could not be started: {e}")
        return 1
    except Exception as e:
        logger.error("Fatal error", extra={"error": str(e)})
        return 1

    logger.info("CDC Consumer Service stopped")
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="CDC event sink")
    parser.add_argument("--config", type=Path, help="Path to a YAML or JSON config file")
    return parser.parse_args(argv)


def run(argv: Optional[List[str]] = None) -> None:
    """Console script entry point."""
    args = parse_args(argv)

    try:
        config = load_configuration(args.config)
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    setup_logging(config.logging, config.environment, config.app_name)
    sys.exit(asyncio.run(main(config)))


if __name__ == "__main__":
    run()
