from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from videochat.routers import signaling
from videochat.services.broker import SignalingBroker
from videochat.config import ice_servers, settings
import logging

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="WebRTC FastAPI Video Chat")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(signaling.router)


@app.get("/config")
async def rtc_config():
    """Expose ICE server config to clients.

    Environment variables (optional):
    - STUN_SERVER: e.g. stun:stun.example.com:3478
    - TURN_URL: e.g. turn:turn.example.com:3478
    - TURN_USERNAME
    - TURN_PASSWORD
    """
    return {"iceServers": ice_servers(settings)}


@app.api_route("/health", methods=["GET", "POST"])
async def health_check():
    return {"ok": True}


# One broker per process; room state starts empty on every boot
@app.on_event("startup")
async def on_startup():
    app.state.broker = SignalingBroker(queue_size=settings.SEND_QUEUE_SIZE)
    logger.info("Signaling broker started")


@app.on_event("shutdown")
async def on_shutdown():
    broker = getattr(app.state, "broker", None)
    if broker is not None:
        await broker.shutdown()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
