"""
Configuration for the MDS Agency service
"""

from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    """Application settings"""

    # AWS Configuration
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None

    # Store of record (DynamoDB)
    DEVICE_TABLE_NAME: str = "mds-devices-dev"
    EVENT_TABLE_NAME: str = "mds-events-dev"
    TELEMETRY_TABLE_NAME: str = "mds-telemetry-dev"

    # Fast-read vehicle state cache (DynamoDB)
    VEHICLE_STATE_TABLE_NAME: str = "mds-vehicle-state-dev"

    # Append-only stream (Kinesis)
    KINESIS_STREAM_NAME: str = "mds-agency-stream-dev"
    KINESIS_BATCH_SIZE: int = 500  # PutRecords limit

    # "dynamodb" or "memory"
    STORAGE_BACKEND: str = "dynamodb"

    # Service Configuration
    SERVICE_NAME: str = "mds-agency"
    LOG_LEVEL: str = "INFO"

    # Behaviour
    PAGE_SIZE: int = 1000
    SLOW_EVENT_MS: int = 100
    SLOW_TELEMETRY_MS: int = 300

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
