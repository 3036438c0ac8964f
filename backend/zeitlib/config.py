"""Runtime configuration, read from the environment (and an optional .env file)."""
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env file if present
_PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), '..', '..'))
load_dotenv(os.path.join(_PROJECT_ROOT, '.env'))

_DEFAULT_DB_PATH = os.path.normpath(os.path.join(os.path.dirname(__file__), '..', 'data'))


class Settings(BaseModel):
    db_path: str = _DEFAULT_DB_PATH
    log_level: str = 'INFO'
    log_file: str = '/tmp/zeit-engine.log'
    default_region: str = 'DE'
    max_overtime_hours: Optional[float] = None
    max_minus_hours: Optional[float] = None

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return (v or 'INFO').strip().upper()

    @field_validator('max_overtime_hours', 'max_minus_hours', mode='before')
    @classmethod
    def validate_cap(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        try:
            hours = float(str(v).replace(',', '.'))
        except ValueError:
            raise ValueError("Stundengrenze muss eine Zahl sein")
        if hours < 0:
            raise ValueError("Stundengrenze darf nicht negativ sein")
        return hours


def get_settings() -> Settings:
    """Build Settings from ZEIT_* environment variables."""
    env = os.environ
    return Settings(
        db_path=os.path.normpath(env.get('ZEIT_DB_PATH') or _DEFAULT_DB_PATH),
        log_level=env.get('ZEIT_LOG_LEVEL', 'INFO'),
        log_file=env.get('ZEIT_LOG_FILE', '/tmp/zeit-engine.log'),
        default_region=env.get('ZEIT_DEFAULT_REGION', 'DE'),
        max_overtime_hours=env.get('ZEIT_MAX_OVERTIME_HOURS'),
        max_minus_hours=env.get('ZEIT_MAX_MINUS_HOURS'),
    )
