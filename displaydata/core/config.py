import os
from typing import List, Literal, Optional
from dotenv import load_dotenv


# Load environment variables from a .env file at the repository root.
# Variables explicitly set in the environment (e.g. by the Helm chart) take precedence.
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
ENV_PATH = os.path.join(BASE_DIR, '.env')
load_dotenv(ENV_PATH)


def parse_brokers(value: str) -> List[str]:
    """
    Parses the Kafka broker list. Accepts a comma-separated string or a list-like string.
    Example: "kafka-0:9092,kafka-1:9092" → ["kafka-0:9092", "kafka-1:9092"]
    """
    if not value:
        return ["kafka:9092"]
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    brokers = [b.strip().strip('"').strip("'") for b in value.split(",")]
    return [b for b in brokers if b]


class Settings:
    """
    Environment driven settings shared by the content and analytics services.

    Each service builds its own instance so that SERVICE_NAME and PORT can fall back
    to a service specific default while every other knob is read the same way.
    """

    def __init__(self, service_name: Optional[str] = None, port: Optional[int] = None):
        # --- General Environment Settings ---
        self.SERVICE_NAME: str = os.getenv('SERVICE_NAME', service_name or 'analytics-service')
        self.ENVIRONMENT: Literal["local", "dev", "staging", "prod"] = os.getenv('ENVIRONMENT', 'local')
        self.PORT: int = int(os.getenv('PORT', port or 3003))

        # --- Logging ---
        self.LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
        # LOG_FORMAT is one of json, detailed, simple
        self.LOG_FORMAT: str = os.getenv('LOG_FORMAT', 'json')

        # --- Kafka Configuration ---
        self.KAFKA_BROKERS: List[str] = parse_brokers(os.getenv('KAFKA_BROKERS', 'kafka:9092'))
        self.KAFKA_TOPIC: str = os.getenv('KAFKA_TOPIC', 'content-events')
        self.KAFKA_GROUP_ID: str = os.getenv('KAFKA_GROUP_ID', 'analytics-consumers')
        self.KAFKA_CLIENT_ID: str = os.getenv('KAFKA_CLIENT_ID', self.SERVICE_NAME)
        self.KAFKA_AUTO_OFFSET_RESET: str = os.getenv('KAFKA_AUTO_OFFSET_RESET', 'earliest')
        self.KAFKA_REQUEST_TIMEOUT_MS: int = int(os.getenv('KAFKA_REQUEST_TIMEOUT_MS', 30000))
        self.KAFKA_RETRY_BACKOFF_MS: int = int(os.getenv('KAFKA_RETRY_BACKOFF_MS', 300))
        # Fixed delay between connect attempts. There is no retry limit.
        self.KAFKA_RETRY_DELAY_SECONDS: float = float(os.getenv('KAFKA_RETRY_DELAY_SECONDS', 5))
        # Upper bound on the graceful disconnect during shutdown.
        self.KAFKA_SHUTDOWN_TIMEOUT_SECONDS: float = float(os.getenv('KAFKA_SHUTDOWN_TIMEOUT_SECONDS', 5))

    @property
    def KAFKA_BOOTSTRAP_SERVERS(self) -> str:
        """Broker list in the comma separated form aiokafka expects."""
        return ",".join(self.KAFKA_BROKERS)


def get_content_settings() -> Settings:
    return Settings(service_name='content-service', port=3002)


def get_analytics_settings() -> Settings:
    return Settings(service_name='analytics-service', port=3003)
