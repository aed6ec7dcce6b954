from fastapi import APIRouter
from app.api.v1.endpoints import auth, users, pitches, investors, subscriptions, chat, favourites, contact, health

api_router = APIRouter()

# Deep health check endpoints (use /health/ready for the load balancer)
api_router.include_router(health.router)


@api_router.get("/health", tags=["Health"])
async def health_check():
    """Simple health check endpoint for the load balancer"""
    return {"status": "healthy", "service": "konnectsphere-backend"}


api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(users.router, prefix="/users", tags=["User Management"])
api_router.include_router(pitches.router, prefix="/pitches", tags=["Pitches"])
api_router.include_router(investors.router, prefix="/investors", tags=["Investors"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["Subscriptions"])
api_router.include_router(chat.router, prefix="/chat", tags=["Chat"])
api_router.include_router(favourites.router, prefix="/favourites", tags=["Favourites"])
api_router.include_router(contact.router, prefix="/contact", tags=["Contact"])
