"""
Chat Analytics Backend - FastAPI Application
Open chat classification and response urgency metrics for WhatsApp support
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chat_analytics import __version__
from chat_analytics.config import get_settings
from chat_analytics.logging_config import init_logging
from chat_analytics.routers import chats, messages

settings = get_settings()
init_logging(settings)

app = FastAPI(
    title="Chat Analytics API",
    description="WhatsApp support chat analytics: open chats, response urgency and message activity",
    version=__version__,
    debug=settings.debug,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "chat-analytics-api"}


app.include_router(chats.router, prefix="/api", tags=["chats"])
app.include_router(messages.router, prefix="/api", tags=["messages"])
