import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from postlink.core.config import settings
from postlink.core.exceptions import PostLinkError, StoreError
from postlink.core.logging import setup_logging
from postlink.routers import api_router

logger = logging.getLogger(__name__)

TAGS_METADATA = [
    {"name": "Requests", "description": "Заявки на отправку и доставку: создание с автоматическим подбором, список, удаление, закрытие."},
    {"name": "Responses", "description": "Отклики: двустороннее принятие, отказ, отмена, ручные отклики на чужие заявки."},
    {"name": "Chats", "description": "Чаты, созданные после взаимного принятия отклика."},
    {"name": "Notifications", "description": "Уведомления пользователя, продублированные в Telegram."},
]

DESCRIPTION = """
# PostLink API

Бэкенд Telegram Mini App PostLink: отправители посылок находят попутчиков, которые могут их доставить.

## Авторизация

Все запросы требуют заголовок:
```
Authorization: Bearer <token>
```

## Флоу сопоставления

```
POST /requests/send | /requests/delivery   → заявка + автоматический подбор
GET  /responses                            → входящие отклики
POST /responses/{ref}/accept               → partial (приняла одна сторона)
POST /responses/{ref}/accept               → accepted + чат (приняли обе стороны)
```

`ref` может быть числовым id или составным: `send_{id}_delivery_{id}`.
"""


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("%s %s started", settings.PROJECT_NAME, settings.VERSION)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=DESCRIPTION,
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PostLinkError)
async def postlink_error_handler(request: Request, exc: PostLinkError):
    if isinstance(exc, StoreError):
        logger.error("%s %s failed: store unavailable", request.method, request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/health", tags=["Health"])
async def health():
    """Проверка работоспособности сервера."""
    return {"status": "ok"}
