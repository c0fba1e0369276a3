import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load the appropriate .env file on module import
env = os.environ.get("ORDERSHARD_ENV", "development").lower()
env_file = f".env.{env}"
if os.path.exists(env_file):
    load_dotenv(env_file)
else:
    # Fall back to the default .env file
    load_dotenv()


def _int_list(value: str) -> tuple[int, ...]:
    return tuple(int(part) for part in value.split(",") if part.strip())


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    return int(value)


@dataclass
class Config:
    environment: str
    database_url: str
    transaction_mode: str
    pool_min_size: int
    pool_max_size: int
    connect_timeout: int
    batch_count: int
    user_ids: tuple[int, ...]
    update_iterations: int
    sample_seed: Optional[int]
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            environment=env,
            database_url=os.environ.get(
                "DATABASE_URL", "postgresql://postgres@localhost:5432/ordershard"
            ),
            transaction_mode=os.environ.get("ORDERSHARD_TRANSACTION", "local").lower(),
            pool_min_size=int(os.environ.get("ORDERSHARD_POOL_MIN_SIZE", "1")),
            pool_max_size=int(os.environ.get("ORDERSHARD_POOL_MAX_SIZE", "0")),
            connect_timeout=int(os.environ.get("ORDERSHARD_CONNECT_TIMEOUT", "10")),
            batch_count=int(os.environ.get("ORDERSHARD_BATCH_COUNT", "9")),
            user_ids=_int_list(os.environ.get("ORDERSHARD_USER_IDS", "10,11")),
            update_iterations=int(os.environ.get("ORDERSHARD_UPDATE_ITERATIONS", "10")),
            sample_seed=_optional_int(os.environ.get("ORDERSHARD_SAMPLE_SEED")),
            log_level=os.environ.get("ORDERSHARD_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def pooled(self) -> bool:
        return self.pool_max_size > 0


config = Config.from_env()
