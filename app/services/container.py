# app/services/container.py
import logging
from dataclasses import dataclass, field

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.config import Settings
from app.database import create_db_engine, create_session_factory
from app.services.maps import MapsClient
from app.services.realtime import ConnectionManager
from app.services.side_effects import RetryThenLog, SideEffectPolicy, SwallowAndLog
from app.services.sms import SmsClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide service handles, built at startup and closed at shutdown."""

    engine: Engine
    session_factory: sessionmaker
    maps: MapsClient
    sms: SmsClient
    realtime: ConnectionManager = field(default_factory=ConnectionManager)
    side_effects: SideEffectPolicy = field(default_factory=SwallowAndLog)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Services":
        engine = create_db_engine(settings.DATABASE_URL)
        return cls(
            engine=engine,
            session_factory=create_session_factory(engine),
            maps=MapsClient(settings.GOOGLE_MAPS_API_KEY, timeout=settings.MAPS_TIMEOUT_SECONDS),
            sms=SmsClient(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, settings.TWILIO_PHONE_NUMBER),
            side_effects=side_effect_policy(settings.SIDE_EFFECT_RETRIES),
        )

    async def close(self) -> None:
        await self.realtime.close()
        self.maps.close()
        self.sms.close()
        self.engine.dispose()
        logger.info("Service handles closed")


def side_effect_policy(retries: int) -> SideEffectPolicy:
    if retries > 1:
        return RetryThenLog(attempts=retries)
    return SwallowAndLog()


def get_services(request: Request) -> Services:
    return request.app.state.services
