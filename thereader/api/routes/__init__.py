"""API route registration."""

from fastapi import APIRouter

from thereader.api.routes import blocks, books, pages, sessions, tts

# All JSON endpoints live under /api
api_router = APIRouter(prefix="/api")

# Register routes
api_router.include_router(books.router)
api_router.include_router(sessions.router)
api_router.include_router(pages.router)
api_router.include_router(blocks.router)
api_router.include_router(tts.router)
