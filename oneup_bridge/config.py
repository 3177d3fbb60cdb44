"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings

DEFAULT_RESOURCE_TYPES = [
    "Patient",
    "AllergyIntolerance",
    "CarePlan",
    "Condition",
    "DiagnosticReport",
    "Encounter",
    "Immunization",
    "MedicationOrder",
    "MedicationStatement",
    "Observation",
    "Procedure",
]


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "1up Health Container"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    port: int = 80

    # --- 1up Health (source aggregator) ---
    one_up_api_url: str = "https://api.1up.health"
    one_up_client_id: str = ""
    one_up_client_secret: str = ""  # server-side only
    access_token_lifespan: int = 7_000_000  # milliseconds between refreshes
    one_up_sync_on_startup: bool = False

    # --- Destination FHIR store ---
    fhir_server_base_url: str = "http://fhir-server:8080/baseDstu2"

    # --- Auth API (state store) ---
    auth_api_url: str = "http://auth-api:3030"
    auth_api_username: str = "test"
    auth_api_password: str = "test"

    # --- Sync ---
    sync_resource_types: list[str] = DEFAULT_RESOURCE_TYPES
    entry_concurrency: int = 5

    # --- Status reporting ---
    status_service_name: str = "1up Health Container"
    status_dependency: str = "FHIR Data Retrieval"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def refresh_interval_seconds(self) -> float:
        return self.access_token_lifespan / 1000.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
