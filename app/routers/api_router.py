from fastapi import APIRouter
from app.routers import auth, appraisals

# Centralized API router hub; main.py only imports this one.
api_router = APIRouter()

api_router.include_router(auth.router, tags=["Authentication"])
api_router.include_router(appraisals.router, tags=["Appraisals"])
