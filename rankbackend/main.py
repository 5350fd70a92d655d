import asyncio
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from rankbackend.config import settings
from rankbackend.database import engine, Base, SessionLocal
from rankbackend.routes import auth, rank_papers, admin_rank_papers
from rankbackend.services.sweeper import sweep_forever
# Import all models so their tables are registered before create_all
import rankbackend.models  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG
)

# CORS configuration - allow frontend URL from environment or default to all origins
allowed_origins = [settings.FRONTEND_URL] if settings.FRONTEND_URL != "*" else ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    if settings.EXPIRY_SWEEP_INTERVAL_SECONDS > 0:
        app.state.sweep_task = asyncio.create_task(
            sweep_forever(
                SessionLocal,
                settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
                settings.EXPIRY_SWEEP_BATCH_SIZE
            )
        )
    else:
        logger.info("Background expiry sweep disabled")


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "sweep_task", None)
    if task is not None:
        task.cancel()


app.include_router(auth.router)
app.include_router(rank_papers.router)
app.include_router(admin_rank_papers.router)


@app.get("/")
async def root():
    return {
        "message": "Rank Paper API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "rankbackend.main:app",
        host="127.0.0.1",
        port=8001,
        reload=False
    )
