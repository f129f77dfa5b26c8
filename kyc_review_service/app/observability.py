from kyc_review_service.app.config import settings
import logging
from typing import Dict, List, Optional, Tuple
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader, ConsoleMetricExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME as ResourceAttributesServiceName
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from pythonjsonlogger import jsonlogger


logger = logging.getLogger("kyc_review_service")

def setup_json_logging():
    root_logger = logging.getLogger()
    if any(isinstance(h.formatter, jsonlogger.JsonFormatter) for h in root_logger.handlers):
        return
    logHandler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(module)s %(funcName)s %(lineno)d %(otelTraceID)s %(otelSpanID)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger_name", "asctime": "timestamp"},
    )
    logHandler.setFormatter(formatter)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(logHandler)
    log_level = settings.LOG_LEVEL.upper()
    root_logger.setLevel(log_level)
    logger.setLevel(log_level)
    logger.info(f"JSON logging configured at level {log_level}.")

def setup_opentelemetry(service_name: str):
    resource = Resource(attributes={
        ResourceAttributesServiceName: service_name,
    })
    tracer_provider = TracerProvider(resource=resource)
    if settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT:
        logger.info(f"Configuring OTLP Span Exporter. Endpoint: {settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT}")
        otlp_span_exporter = OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT, insecure=True)
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
    else:
        logger.info("OTLP Span Exporter not configured. Using Console for spans.")
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tracer_provider)
    logger.info(f"OpenTelemetry TracerProvider configured for service: {service_name}.")

    metric_readers = []
    if settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT:
        logger.info(f"Configuring OTLP Metric Exporter. Endpoint: {settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT}")
        otlp_metric_exporter = OTLPMetricExporter(endpoint=settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT, insecure=True)
        metric_readers.append(PeriodicExportingMetricReader(otlp_metric_exporter, export_interval_millis=5000))
    else:
        logger.info("OTLP Metric Exporter not configured. Using Console for metrics.")
        metric_readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter(), export_interval_millis=5000))
    meter_provider = MeterProvider(resource=resource, metric_readers=metric_readers)
    metrics.set_meter_provider(meter_provider)
    logger.info(f"OpenTelemetry MeterProvider configured for service: {service_name}.")

# Call at module load time
setup_json_logging()

# Resolved lazily through the global providers, so they pick up setup_opentelemetry() from the entry point.
tracer = trace.get_tracer("kyc_review_service.tracer")


class MetricsRecorder:
    """
    Named counters and timers on top of an OpenTelemetry Meter.

    Instruments are created on first use. Every data point carries the
    ``environment`` dimension. Recording never raises: a metrics sink outage
    must not fail the request that emitted the metric.
    """

    def __init__(self, meter: metrics.Meter, environment: str, prefix: str = "kyc_review"):
        self._meter = meter
        self._environment = environment
        self._prefix = prefix
        self._counters: Dict[str, metrics.Counter] = {}
        self._histograms: Dict[str, metrics.Histogram] = {}

    @classmethod
    def from_settings(cls) -> "MetricsRecorder":
        return cls(metrics.get_meter("kyc_review_service.meter"), environment=settings.ENVIRONMENT)

    def _attributes(self, dimensions: Optional[Dict[str, str]]) -> Dict[str, str]:
        attributes = {"environment": self._environment}
        if dimensions:
            attributes.update({key: str(value) for key, value in dimensions.items()})
        return attributes

    def increment(self, metric_name: str, value: int = 1, dimensions: Optional[Dict[str, str]] = None) -> None:
        try:
            counter = self._counters.get(metric_name)
            if counter is None:
                counter = self._meter.create_counter(
                    name=f"{self._prefix}.{metric_name}",
                    description=f"Count of {metric_name}",
                    unit="1",
                )
                self._counters[metric_name] = counter
            counter.add(value, attributes=self._attributes(dimensions))
        except Exception as e:
            logger.warning(f"Failed to record metric {metric_name}: {e}", exc_info=True)

    def record_duration(self, metric_name: str, milliseconds: float, dimensions: Optional[Dict[str, str]] = None) -> None:
        try:
            histogram = self._histograms.get(metric_name)
            if histogram is None:
                histogram = self._meter.create_histogram(
                    name=f"{self._prefix}.{metric_name}",
                    description=f"Duration of {metric_name}",
                    unit="ms",
                )
                self._histograms[metric_name] = histogram
            histogram.record(milliseconds, attributes=self._attributes(dimensions))
        except Exception as e:
            logger.warning(f"Failed to record duration metric {metric_name}: {e}", exc_info=True)


def inject_trace_context_into_kafka_headers() -> List[Tuple[str, bytes]]:
    """
    Serializes the current OpenTelemetry trace context as Kafka message headers.
    Returns:
        A list of (key, value_bytes) tuples, empty when there is no active span.
    """
    carrier: Dict[str, str] = {}
    TraceContextTextMapPropagator().inject(carrier)
    return [(key, value.encode('utf-8')) for key, value in carrier.items()]
