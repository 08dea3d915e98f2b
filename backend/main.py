from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging
import json

from config.settings import Settings, settings as default_settings
from core.errors import QuizError
from core.messages import get_message
from core.state import AppContext, build_context, get_ws_context
from database.db import init_db
from realtime.handler import QuizSocketHandler
from routes import admin, charts, user

# Configure logging
logging.basicConfig(
    level=getattr(logging, default_settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the application around one context.

    Tests pass their own settings or context; the module-level `app` uses the
    environment configuration.
    """
    context = context or build_context(settings)
    settings = context.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events"""
        try:
            init_db(context.engine)
            logger.info("✅ Application started successfully")
            logger.info(f"📊 API docs available at: http://localhost:{settings.PORT}/docs")
        except Exception as e:
            logger.error(f"❌ Failed to start application: {str(e)}")
            raise

        yield

        context.engine.dispose()
        logger.info("🛑 Application shutdown")

    app = FastAPI(
        title=settings.API_TITLE,
        version=settings.API_VERSION,
        description="Real-time word association quiz API",
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan
    )
    app.state.context = context

    # ============ CORS Middleware ============

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ============ Error Handlers ============

    @app.exception_handler(QuizError)
    async def quiz_error_handler(request: Request, exc: QuizError):
        if exc.code == "persistence":
            logger.error(f"❌ Storage failure on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": get_message(exc.message_key, settings.LANGUAGE),
                "code": exc.code
            }
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Invalid request on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": get_message("payload_invalid", settings.LANGUAGE),
                "code": "validation"
            }
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"❌ Unhandled error on {request.url.path}: {str(exc)}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": get_message("server_error", settings.LANGUAGE),
                "code": "error"
            }
        )

    # ============ Health Check ============

    @app.get("/health", tags=["health"])
    async def health_check():
        """
        Health check endpoint.
        Returns application status.
        """
        return {
            "status": "healthy",
            "service": settings.API_TITLE,
            "version": settings.API_VERSION,
            "connections": context.broadcaster.count()
        }

    # ============ Include Routers ============

    app.include_router(admin.router)
    app.include_router(user.router)
    app.include_router(charts.router)

    # ============ WebSocket Endpoint ============

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        Push channel for participants and admin observers.

        Message Types (client -> server):
            user-connected: {type: "user-connected", payload: {username, sessionId}}
            submit-words: {type: "submit-words", payload: {words: [...]}}
            admin-connected: {type: "admin-connected", payload: {token}}
            ping: {type: "ping"}
        """
        handler = QuizSocketHandler(get_ws_context(websocket))
        connection_id = await handler.connect(websocket)

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError as e:
                    logger.warning(f"Invalid JSON message from {connection_id}: {str(e)}")
                    await handler.broadcaster.send_to(connection_id, "error", {
                        "message": get_message("payload_invalid", settings.LANGUAGE),
                        "code": "validation"
                    })
                    continue

                await handler.handle_message(connection_id, message)

        except WebSocketDisconnect:
            logger.info(f"Client disconnected: {connection_id}")
        except Exception as e:
            logger.error(f"WebSocket error ({connection_id}): {str(e)}", exc_info=True)
        finally:
            await handler.disconnect(connection_id)

    logger.info("✅ All routers registered")
    return app


app = create_app()

# ============ Run Application ============

if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on {default_settings.HOST}:{default_settings.PORT}")

    uvicorn.run(
        app,
        host=default_settings.HOST,
        port=default_settings.PORT,
        log_level=default_settings.LOG_LEVEL.lower()
    )
