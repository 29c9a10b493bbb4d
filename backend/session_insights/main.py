import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from session_insights.api.routes import sessions
from session_insights.config import settings
from session_insights.db.postgres import async_session_factory, close_engine
from session_insights.services.embedding_service import get_embedding_service
from session_insights.services.scheduler import SchedulerService
from session_insights.services.session_pipeline import SessionPipeline
from session_insights.services.session_store import SqlSessionStore
from session_insights.services.summary_service import get_summary_service
from session_insights.services.transcription_service import get_transcription_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")

    store = SqlSessionStore(async_session_factory)

    pipeline = SessionPipeline(
        store,
        transcriber=get_transcription_service(),
        summarizer=get_summary_service(),
        embedder=get_embedding_service(),
    )
    app.state.pipeline = pipeline
    await pipeline.start()

    scheduler = SchedulerService(store)
    app.state.scheduler = scheduler
    await scheduler.start()

    yield

    await scheduler.stop()
    await pipeline.stop()
    await close_engine()


app = FastAPI(
    title="Session Insights",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}
