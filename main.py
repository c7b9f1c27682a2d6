import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from app.config import Settings, settings as default_settings
from app.database import init_db
from app.routes.auth.router import router as auth_router
from app.routes.users.router import router as users_router
from app.routes.ambulances.router import router as ambulances_router
from app.routes.hospitals.router import router as hospitals_router
from app.routes.emergencies.router import router as emergencies_router
from app.routes.payments.router import router as payments_router
from app.routes.realtime.router import router as realtime_router
from app.services.container import Services
from app.utils.errors import register_exception_handlers

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        handles = app.state.services
        handles.realtime.bind_loop(asyncio.get_running_loop())
        init_db(handles.engine)
        logger.info("Ambulance Dispatch API started (%s)", settings.ENVIRONMENT)
        yield
        await handles.close()

    app = FastAPI(title="Ambulance Dispatch API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services or Services.from_settings(settings)

    @app.get("/", include_in_schema=False)
    def read_root():
        return RedirectResponse(url="/docs")

    @app.get("/health", include_in_schema=False)
    def health():
        return {"success": True, "status": "ok"}

    api_router = APIRouter(prefix="/api")
    api_router.include_router(auth_router)
    api_router.include_router(users_router)
    api_router.include_router(ambulances_router)
    api_router.include_router(hospitals_router)
    api_router.include_router(emergencies_router)
    api_router.include_router(payments_router)

    app.include_router(api_router)
    app.include_router(realtime_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(dict.fromkeys([settings.CLIENT_URL, *settings.CORS_ORIGINS])),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app, expose_stack=not settings.is_production)
    return app


app = create_app()
