"""Main entry point for the Prometheus to Datadog forwarder."""
import argparse
import logging
import signal
import sys

from promdd.config import Config, load_config
from promdd.control_api import ControlAPI
from promdd.datadog import DatadogSubmitter
from promdd.errors import ConfigurationError, DiscoveryError, PromDDError
from promdd.prometheus import PrometheusQuerier
from promdd.scheduler import Interrupt, Scheduler, Ticker
from promdd.self_metrics import SelfMetrics, start_self_metrics_server
from promdd.worker import TickExecutor

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        from pythonjsonlogger.json import JsonFormatter

        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        ))
        logging.basicConfig(level=level, handlers=[handler])
    else:
        logging.basicConfig(
            level=level,
            format=LOG_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    # Reduce noise from some libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_executor(config: Config, self_metrics=None) -> TickExecutor:
    querier = PrometheusQuerier(config.prometheus)
    submitter = DatadogSubmitter(config.datadog)
    return TickExecutor(config.worker, querier, submitter, self_metrics=self_metrics)


def install_signal_handlers(interrupt: Interrupt):
    def signal_handler(signum, frame):
        interrupt.trigger(signal.Signals(signum).name)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def main(argv=None):
    """Main function."""
    parser = argparse.ArgumentParser(
        description="Forward Prometheus histograms and counters to Datadog"
    )
    parser.add_argument(
        "--config",
        "-c",
        required=True,
        help="Path to configuration YAML file"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick and exit"
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    worker = config.worker
    logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"Prometheus: {config.prometheus.url}")
    logger.info(f"Datadog site: {config.datadog.site}")
    logger.info(f"Metric prefix: {worker.metric_prefix}")
    logger.info(f"Quantiles: {worker.quantiles}")
    logger.info(
        f"Query interval: {worker.query_interval_s}s, step: {worker.step_s}s, "
        f"tick interval: {worker.sleep_s}s"
    )

    self_metrics = None
    if config.self_metrics.enabled:
        self_metrics = SelfMetrics(prefix=config.self_metrics.prefix)

    executor = build_executor(config, self_metrics)

    if args.once:
        try:
            report = executor.execute()
        except PromDDError as e:
            logger.error(f"Tick failed: {e}")
            return 1
        finally:
            executor.submitter.close()
        logger.info(f"Tick completed in {report.duration_s:.3f}s")
        return 0

    if self_metrics:
        start_self_metrics_server(config.self_metrics, self_metrics)

    interrupt = Interrupt()
    install_signal_handlers(interrupt)

    scheduler = Scheduler(
        executor.execute,
        Ticker(worker.sleep_s),
        interrupt,
        retry_backoff_s=worker.retry_backoff_s,
        skip_overlapping_ticks=worker.skip_overlapping_ticks,
        self_metrics=self_metrics,
        clock=executor.clock,
    )

    if config.global_.control_api_port:
        ControlAPI(scheduler, worker).start_in_thread(
            host=config.global_.control_api_host,
            port=config.global_.control_api_port,
        )

    try:
        scheduler.run()
    except DiscoveryError as e:
        logger.critical(f"Exiting: {e}")
        return 1
    finally:
        executor.submitter.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
