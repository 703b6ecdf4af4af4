import logging
import os

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.routers.ai import router as ai_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="TensionApp API",
    description="AI, speech and video endpoints for the TensionApp team chat",
    version="1.0.0",
)

# CORS middleware configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_router = APIRouter(prefix="/api")
api_router.include_router(ai_router)

app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": "Welcome to TensionApp API"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
