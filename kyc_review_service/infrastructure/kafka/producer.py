# Kafka Producer Utility
import json
import logging
from confluent_kafka import Producer
from pydantic import BaseModel
from typing import Optional, Callable, Any, Dict, Union

from kyc_review_service.app.config import settings
from kyc_review_service.app.observability import inject_trace_context_into_kafka_headers
from kyc_review_service.app.service.exceptions import KafkaProducerError

logger = logging.getLogger(__name__)

class KafkaProducerService:
    def __init__(self, bootstrap_servers: str, client_id: Optional[str] = None):
        self.producer_config = {
            'bootstrap.servers': bootstrap_servers,
            'client.id': client_id or settings.SERVICE_NAME_API,
            # At-most-once: the client library must not resend on its own either
            'retries': 0,
            'enable.idempotence': False,
        }
        self.producer = Producer(self.producer_config)
        logger.info(f"KafkaProducer initialized with servers: {bootstrap_servers}")

    @classmethod
    def from_settings(cls) -> "KafkaProducerService":
        if not settings.KAFKA_BOOTSTRAP_SERVERS:
            logger.error("KAFKA_BOOTSTRAP_SERVERS not configured in settings. KafkaProducer cannot be initialized.")
            raise ValueError("KAFKA_BOOTSTRAP_SERVERS not configured.")
        return cls(bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS)

    def _delivery_report(self, err, msg):
        """ Called once for each message produced to indicate delivery result. """
        if err is not None:
            logger.error(f'Message delivery failed: Topic {msg.topic()} Key {msg.key()}: {err}')
        else:
            logger.info(f'Message delivered: Topic {msg.topic()} Key {msg.key()} Partition [{msg.partition()}] @ Offset {msg.offset()}')

    def produce_message(
        self,
        topic: str,
        message: Union[BaseModel, Dict[str, Any]],
        key: Optional[str] = None,
        callback: Optional[Callable[[Any, Any], None]] = None # err, msg
    ):
        """ Produces a Pydantic model, or an already serialized dict, to a Kafka topic. """
        try:
            value_json = message.model_dump_json() if isinstance(message, BaseModel) else json.dumps(message)
            self.producer.produce(
                topic,
                value=value_json.encode('utf-8'),
                key=key.encode('utf-8') if key else None,
                headers=inject_trace_context_into_kafka_headers(),
                callback=callback if callback else self._delivery_report
            )
            # Serve delivery callbacks of earlier messages without blocking
            self.producer.poll(0)
            logger.debug(f"Message enqueued to topic {topic} (key: {key}): {value_json}")
        except BufferError as e:
            logger.error(f"Kafka producer queue full. Message to {topic} not produced. Error: {e}")
            raise KafkaProducerError(f"Kafka producer queue full: {e}") from e
        except Exception as e:
            logger.error(f"Error producing message to Kafka topic {topic}: {e}", exc_info=True)
            raise KafkaProducerError(f"Failed to produce message to {topic}: {e}") from e

    def flush(self, timeout: float = 10.0) -> int: # Return remaining messages
        """Wait for all messages in the Producer queue to be delivered. """
        remaining = self.producer.flush(timeout)
        if remaining > 0:
            logger.warning(f"{remaining} messages still in Kafka producer queue after flush timeout.")
        else:
            logger.info("All Kafka messages flushed successfully.")
        return remaining
