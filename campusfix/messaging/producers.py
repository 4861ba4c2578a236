import json
import logging
from typing import Any, Dict, Optional

from aiokafka import AIOKafkaProducer
from aiokafka.admin import AIOKafkaAdminClient, NewTopic

from campusfix.core.config import settings

logger = logging.getLogger(__name__)

DEFECT_EVENTS_TOPIC = "defect_events"

# Список топиков, которые нужно создать
KAFKA_TOPICS = [DEFECT_EVENTS_TOPIC]

producer: Optional[AIOKafkaProducer] = None


async def create_topics():
    """
    Создает необходимые топики в Kafka, если они не существуют
    """
    admin_client = AIOKafkaAdminClient(bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS)
    try:
        await admin_client.start()
        existing_topics = await admin_client.list_topics()

        topics_to_create = [
            NewTopic(name=topic, num_partitions=1, replication_factor=1)
            for topic in KAFKA_TOPICS
            if topic not in existing_topics
        ]
        if topics_to_create:
            logger.info(f"Creating Kafka topics: {[t.name for t in topics_to_create]}")
            await admin_client.create_topics(topics_to_create)
    except Exception as e:
        logger.error(f"Failed to create Kafka topics: {e}")
    finally:
        await admin_client.close()


async def get_kafka_producer() -> AIOKafkaProducer:
    """
    Возвращает инстанс Kafka-продюсера или создает новый, если его нет
    """
    global producer
    if producer is None:
        new_producer = AIOKafkaProducer(
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            value_serializer=lambda v: json.dumps(v, ensure_ascii=False, default=str).encode("utf-8"),
        )
        await new_producer.start()
        producer = new_producer
    return producer


async def close_kafka_producer():
    """
    Закрывает соединение с Kafka
    """
    global producer
    if producer is not None:
        await producer.stop()
        producer = None


async def send_event(event_type: str, data: Dict[str, Any], topic: str = DEFECT_EVENTS_TOPIC) -> bool:
    """
    Отправляет событие в Kafka. Ошибка брокера не должна прерывать запрос,
    поэтому она только логируется.
    """
    if not settings.KAFKA_ENABLED:
        return False
    try:
        kafka_producer = await get_kafka_producer()
        await kafka_producer.send_and_wait(topic, {"event_type": event_type, "data": data})
        logger.info(f"Sent event to topic {topic}: {event_type}")
        return True
    except Exception as e:
        logger.error(f"Failed to send Kafka event {event_type}: {e}")
        return False
