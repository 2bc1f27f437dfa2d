import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from config import API_TITLE, API_VERSION, HOST, LOG_LEVEL, PORT
from database import init_database
from auth import jwt_middleware
from errors import register_error_handlers
from routers import (admin_router, auth_router, doctors_router, oauth_router, patients_router, public_router,
                     users_router)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize database on startup
    init_database()
    yield


app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)

register_error_handlers(app)

# Add middleware
app.middleware("http")(jwt_middleware)

# Include routers
app.include_router(auth_router.router)
app.include_router(oauth_router.router)
app.include_router(public_router.router)
app.include_router(patients_router.router)
app.include_router(doctors_router.router)
app.include_router(admin_router.router)
app.include_router(users_router.router)


# Root endpoint
@app.get("/")
def root():
    return {
        "message": "Hospital Management System API",
        "docs": "/docs",
        "endpoints": {
            "login": "POST /auth/login",
            "signup": "POST /auth/signup",
            "oauth_login": "GET /oauth2/authorization/{provider}",
            "doctors": "GET /public/doctors",
            "profile": "GET /patients/profile",
            "book_appointment": "POST /patients/appointments",
            "doctor_appointments": "GET /doctors/appointments",
            "patients": "GET /admin/patients",
            "onboard_doctor": "POST /admin/onBoardNewDoctor",
            "current_user": "GET /users/me"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=HOST, port=PORT, reload=True)
