from functools import lru_cache

from ride_shared.db.database import get_sessionmaker as shared_get_sessionmaker

from ride_core.config.settings import Settings


@lru_cache()
def _sessionmaker_for(database_url: str):
    return shared_get_sessionmaker(database_url)


def get_sessionmaker(settings: Settings):
    return _sessionmaker_for(settings.database_url)
