import os
from pydantic import BaseModel

class Settings(BaseModel):
    # Basic
    ENV: str = os.getenv("ENV", "dev")
    DEFAULT_LANGUAGE: str = os.getenv("DEFAULT_LANGUAGE", "fr")

    # Cache (profiles are snapshots, 15 minutes by default)
    CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "900"))
    CACHE_MAX_ENTRIES: int = int(os.getenv("CACHE_MAX_ENTRIES", "1024"))
    USE_REDIS: bool = os.getenv("USE_REDIS", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Time budgets
    REQUEST_BUDGET_SECONDS: float = float(os.getenv("REQUEST_BUDGET_SECONDS", "30"))
    SOURCE_TIMEOUT_SECONDS: float = float(os.getenv("SOURCE_TIMEOUT_SECONDS", "10"))
    HTTP_RETRIES: int = int(os.getenv("HTTP_RETRIES", "1"))
    HTTP_BACKOFF_SECONDS: float = float(os.getenv("HTTP_BACKOFF_SECONDS", "0.5"))

    # Query bounds
    RADIUS_MIN_M: int = int(os.getenv("RADIUS_MIN_M", "100"))
    RADIUS_MAX_M: int = int(os.getenv("RADIUS_MAX_M", "10000"))
    RADIUS_DEFAULT_M: int = int(os.getenv("RADIUS_DEFAULT_M", "1500"))

    # Transaction plausibility (tuned empirically, not law)
    MIN_SURFACE_M2: float = float(os.getenv("MIN_SURFACE_M2", "9"))
    MIN_PRICE_PER_M2: float = float(os.getenv("MIN_PRICE_PER_M2", "500"))
    MAX_PRICE_PER_M2: float = float(os.getenv("MAX_PRICE_PER_M2", "30000"))

    # Data providers
    GEO_BASE_URL: str = os.getenv("GEO_BASE_URL", "https://api-adresse.data.gouv.fr")
    CADASTRE_BASE_URL: str = os.getenv("CADASTRE_BASE_URL", "https://apicarto.ign.fr/api/cadastre")
    DVF_BASE_URL: str = os.getenv("DVF_BASE_URL", "https://app.dvf.etalab.gouv.fr/api")
    DVF_RADIUS_BASE_URL: str = os.getenv("DVF_RADIUS_BASE_URL", "https://api.cquest.org/dvf")
    # Radius fallback widens step by step until enough recent sales are found
    DVF_RADIUS_STEPS_M: list[int] = [int(d) for d in os.getenv("DVF_RADIUS_STEPS_M", "800,1200,2000").split(",")]
    DVF_MIN_SALES_1Y: int = int(os.getenv("DVF_MIN_SALES_1Y", "12"))
    DVF_MIN_SALES_3Y: int = int(os.getenv("DVF_MIN_SALES_3Y", "24"))
    ENERGY_BASE_URL: str = os.getenv(
        "ENERGY_BASE_URL", "https://data.ademe.fr/data-fair/api/v1/datasets/dpe-v2-logements-existants"
    )
    RISKS_BASE_URL: str = os.getenv("RISKS_BASE_URL", "https://georisques.gouv.fr/api/v1")
    SCHOOLS_BASE_URL: str = os.getenv("SCHOOLS_BASE_URL", "https://data.education.gouv.fr/api/records/1.0")
    SCHOOLS_MAX_ROWS: int = int(os.getenv("SCHOOLS_MAX_ROWS", "10"))
    ATMO_BASE_URL: str = os.getenv("ATMO_BASE_URL", "https://api.atmo-france.org/api")
    OVERPASS_URL: str = os.getenv("OVERPASS_URL", "https://overpass-api.de/api/interpreter")
    SAFETY_BASE_URL: str = os.getenv("SAFETY_BASE_URL", "https://www.data.gouv.fr/api/1/datasets")
    URBANISM_BASE_URL: str = os.getenv("URBANISM_BASE_URL", "https://apicarto.ign.fr/api/gpu")
    OWNERSHIP_BASE_URL: str = os.getenv("OWNERSHIP_BASE_URL", "https://api-immobilier.pappers.fr/v1")
    PAPPERS_API_KEY: str | None = os.getenv("PAPPERS_API_KEY")

    # CORS
    ALLOW_ORIGINS: str = os.getenv("ALLOW_ORIGINS", "*")

    # Metrics
    PROMETHEUS_ENABLED: bool = os.getenv("PROMETHEUS_ENABLED", "true").lower() == "true"

settings = Settings()
