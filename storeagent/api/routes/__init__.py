"""API routes."""

from fastapi import APIRouter

from storeagent.api.routes import prompt_templates

api_router = APIRouter()

api_router.include_router(prompt_templates.router, prefix="/prompt-templates", tags=["prompt-templates"])
