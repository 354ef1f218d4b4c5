"""
Configuration management for the scene generation backend
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Settings:
    """Application settings"""

    # Redis
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_MAX_CONNECTIONS: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "50"))
    REDIS_SOCKET_TIMEOUT: int = int(os.getenv("REDIS_SOCKET_TIMEOUT", "5"))
    REDIS_SOCKET_CONNECT_TIMEOUT: int = int(os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "5"))
    REDIS_RETRY_ON_TIMEOUT: bool = os.getenv("REDIS_RETRY_ON_TIMEOUT", "true").lower() == "true"
    REDIS_HEALTH_CHECK_INTERVAL: int = int(os.getenv("REDIS_HEALTH_CHECK_INTERVAL", "30"))

    # CORS
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3000")

    # Application
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))

    # API Keys
    REPLICATE_API_KEY: str = os.getenv("REPLICATE_API_KEY", "")
    REPLICATE_API_TOKEN: str = os.getenv("REPLICATE_API_TOKEN", "")  # Alternative naming
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")

    # Replicate Configuration
    REPLICATE_MAX_RETRIES: int = int(os.getenv("REPLICATE_MAX_RETRIES", "3"))
    REPLICATE_TIMEOUT: int = int(os.getenv("REPLICATE_TIMEOUT", "600"))
    DEFAULT_VIDEO_MODEL: str = os.getenv("DEFAULT_VIDEO_MODEL", "google/veo-3.1")
    REFERENCE_IMAGE_MODEL: str = os.getenv("REFERENCE_IMAGE_MODEL", "black-forest-labs/flux-schnell")

    # Script writing (Gemini)
    SCRIPT_MODEL: str = os.getenv("SCRIPT_MODEL", "gemini-2.5-pro")
    SCRIPT_TIMEOUT: float = float(os.getenv("SCRIPT_TIMEOUT", "300"))  # 5 minutes

    # Generation run
    GENERATION_RUN_TIMEOUT: float = float(os.getenv("GENERATION_RUN_TIMEOUT", "3600"))
    MAX_PARALLEL_SCENES: int = int(os.getenv("MAX_PARALLEL_SCENES", "4"))
    DEFAULT_EXECUTION_MODE: str = os.getenv("DEFAULT_EXECUTION_MODE", "sequential")  # sequential | parallel
    TEMP_DIR: str = os.getenv("TEMP_DIR", "/tmp/scene_jobs")

    # Cloud Storage Configuration
    STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "")

    # AWS S3 Configuration
    AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")
    PRESIGNED_URL_EXPIRY: int = int(os.getenv("PRESIGNED_URL_EXPIRY", "3600"))  # 1 hour in seconds

    # DynamoDB Configuration
    DYNAMODB_ENDPOINT: str = os.getenv("DYNAMODB_ENDPOINT", "http://localhost:8001")
    DYNAMODB_REGION: str = os.getenv("DYNAMODB_REGION", "us-east-1")
    DYNAMODB_TABLE_NAME: str = os.getenv("DYNAMODB_TABLE_NAME", "ScenePipelineProjects")
    # Use local DynamoDB for development
    USE_LOCAL_DYNAMODB: bool = os.getenv("USE_LOCAL_DYNAMODB", "true").lower() == "true"

    @property
    def dynamodb_access_key_id(self) -> str:
        """Get DynamoDB access key, using fake credentials for local dev if not set."""
        if self.USE_LOCAL_DYNAMODB:
            return self.AWS_ACCESS_KEY_ID if self.AWS_ACCESS_KEY_ID else "fakeAccessKey"
        return self.AWS_ACCESS_KEY_ID

    @property
    def dynamodb_secret_access_key(self) -> str:
        """Get DynamoDB secret key, using fake credentials for local dev if not set."""
        if self.USE_LOCAL_DYNAMODB:
            return self.AWS_SECRET_ACCESS_KEY if self.AWS_SECRET_ACCESS_KEY else "fakeSecretKey"
        return self.AWS_SECRET_ACCESS_KEY

    def validate_dynamodb_config(self) -> None:
        """
        Validate DynamoDB configuration at startup.
        Raises ValueError if production mode lacks required credentials.
        """
        if not self.USE_LOCAL_DYNAMODB:
            if not self.AWS_ACCESS_KEY_ID:
                raise ValueError("AWS_ACCESS_KEY_ID is required when USE_LOCAL_DYNAMODB=false")
            if not self.AWS_SECRET_ACCESS_KEY:
                raise ValueError("AWS_SECRET_ACCESS_KEY is required when USE_LOCAL_DYNAMODB=false")

    # Job Queue
    JOB_QUEUE_NAME: str = "scene_generation_queue"
    JOB_PROGRESS_CHANNEL: str = "job_progress_updates"

    # Job timeouts (in seconds)
    JOB_RESULT_TTL: int = int(os.getenv("JOB_RESULT_TTL", "86400"))  # 24 hours

    @property
    def cors_origins_list(self) -> list:
        """Parse CORS origins into a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


# Global settings instance
settings = Settings()
