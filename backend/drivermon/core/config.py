from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Drivermon Trip API"
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = "sqlite:///./drivermon.db"
    log_level: str = "INFO"

    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24

    s3_bucket: str = "drivermon-clips"
    aws_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    presign_expires_sec: int = 3600

    chunk_seconds: float = 30.0
    gps_flush_seconds: float = 10.0
    final_flush_timeout_sec: float | None = None
    enforce_single_active_trip: bool = True

    roboflow_api_key: str = ""
    roboflow_workspace: str = ""
    roboflow_workflow_id: str = ""
    roboflow_api_url: str = "https://api.roboflow.com"
    inference_webrtc_url: str = "https://serverless.roboflow.com/initialise_webrtc_worker"
    stun_url: str = "stun:stun.l.google.com:19302"

    default_latitude: float = 37.7749
    default_longitude: float = -122.4194


settings = Settings()
