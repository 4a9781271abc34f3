import os
from dotenv import load_dotenv

from simnations.utils.casting import optional_str, to_bool

load_dotenv()

PRODUCTION = "production"
DEVELOPMENT = "development"
TEST = "test"


class Env:
    APP_ENV = (os.getenv("APP_ENV") or DEVELOPMENT).strip().lower()

    # MongoDB
    MONGO_URI = optional_str(os.getenv("MONGO_URI"))
    MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "simnations")
    STATES_COLLECTION = os.getenv("STATES_COLLECTION", "states")

    # Scheduler
    JOBS_CONFIG = os.getenv("JOBS_CONFIG", "jobs.yaml")
    ECONOMIC_JOB_SCHEDULE = optional_str(os.getenv("ECONOMIC_JOB_SCHEDULE"))

    # Discord webhooks (optional)
    LOG_WEBHOOK = optional_str(os.getenv("LOG_WEBHOOK"))
    ECONOMIC_JOB_ALERT_WEBHOOK = optional_str(os.getenv("ECONOMIC_JOB_ALERT_WEBHOOK"))

    # Logging
    LOG_STDOUT = to_bool(os.getenv("LOG_STDOUT", "true"))

    @classmethod
    def is_test(cls) -> bool:
        return cls.APP_ENV == TEST

    @classmethod
    def is_production(cls) -> bool:
        return cls.APP_ENV == PRODUCTION

    @classmethod
    def validate(cls):
        if cls.APP_ENV not in (PRODUCTION, DEVELOPMENT, TEST):
            raise ValueError(f"Unsupported APP_ENV: {cls.APP_ENV}")

        if cls.is_test():
            return

        required_vars = {
            "MONGO_URI": cls.MONGO_URI,
        }

        missing_vars = [var for var, value in required_vars.items() if not value]
        if missing_vars:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )
