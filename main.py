import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.core.database import connect_to_mongo, close_mongo_connection
from src.api.routes_videos import router as videos_router
from src.ingestion.errors import IngestError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="VOD Site API", version="0.1.0")

@app.on_event("startup")
async def startup_event():
    await connect_to_mongo()

@app.on_event("shutdown")
async def shutdown_event():
    await close_mongo_connection()

@app.exception_handler(IngestError)
async def ingest_error_handler(request: Request, exc: IngestError):
    logger.warning("Upload rejected (%s): %s", exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

app.include_router(videos_router, prefix="/videos", tags=["videos"])

# Allow CORS (for frontend)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Replace with your frontend URL in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": "VOD upload service running"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("main:app", host="0.0.0.0", port=port)
