from fastapi import APIRouter

from postlink.routers import chats, notifications, requests, responses

api_router = APIRouter()

api_router.include_router(requests.router)
api_router.include_router(responses.router)
api_router.include_router(chats.router)
api_router.include_router(notifications.router)
