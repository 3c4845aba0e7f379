from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from src.config import settings
from src.database import Base, engine
from src.exceptions import register_exception_handlers
from src.logging_config import configure_logging
from src.auth import router as auth_router
from src.buses import router as buses_router
from src.bookings import router as bookings_router
from src.payments import router as payments_router
from src.offers import router as offers_router
from src.reviews import router as reviews_router

configure_logging()

if settings.AUTO_CREATE_SCHEMA:
    Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Bus ticket reservation API",
    docs_url="/docs",
    redoc_url="/redoc"
)

register_exception_handlers(app)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    auth_router.router,
    prefix=f"{settings.API_PREFIX}/auth",
    tags=["Authentication"]
)

app.include_router(
    buses_router.router,
    prefix=f"{settings.API_PREFIX}/buses",
    tags=["Buses"]
)

app.include_router(
    bookings_router.router,
    prefix=f"{settings.API_PREFIX}/bookings",
    tags=["Bookings"]
)

app.include_router(
    payments_router.router,
    prefix=f"{settings.API_PREFIX}/payment",
    tags=["Payments"]
)

app.include_router(
    offers_router.router,
    prefix=f"{settings.API_PREFIX}/offers",
    tags=["Offers"]
)

app.include_router(
    reviews_router.router,
    prefix=f"{settings.API_PREFIX}/reviews",
    tags=["Reviews"]
)

logger.info(f"{settings.PROJECT_NAME} started ({settings.ENVIRONMENT})")

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": f"{settings.PROJECT_NAME} API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
