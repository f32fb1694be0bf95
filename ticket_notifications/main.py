from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ticket_notifications import __version__
from ticket_notifications.api.v1.router import router as v1_router
from ticket_notifications.core.logging import configure_logging
from ticket_notifications.core.settings import get_settings
from ticket_notifications.middleware.request_id import RequestIDMiddleware

configure_logging()
settings = get_settings()

app = FastAPI(title="Ticket Notifications API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestIDMiddleware)

app.include_router(v1_router, prefix="/api/v1")


@app.get("/healthz")
def root_healthz() -> dict[str, str]:
    return {"status": "healthy", "service": "ticket-notifications", "version": __version__}
