"""Aggregate all REST sub-routers into `api_router`."""

from fastapi import APIRouter

from .topics import router as topics_router

api_router = APIRouter()
api_router.include_router(topics_router)
