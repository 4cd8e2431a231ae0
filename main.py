import os
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from api import (
    get_donor_count,
    get_donors,
    search_donors,
    register_donor,
    filter_donors,
    send_chat_message,
    BackendNotConfigured,
    RegistrationError,
)
from schemas import (
    BLOOD_GROUPS,
    Donor,
    DonorRegistration,
    DonorList,
    ChatPayload,
    ChatReply,
    ChatIntro,
    SetupStatus,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ------------------------------------
# App Setup
# ------------------------------------
app = FastAPI(title="Lifeware Donor API", version="1.0.0")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

PAGES = {
    "home": "/",
    "donors": "/donors",
    "register_donor": "/register-donor",
    "chatbot": "/chat",
    "setup": "/setup",
}

GREETING = (
    "Hello! I'm Lifela AI, your intelligent health assistant. I'm here to help you with questions "
    "about Thalassemia, diet, care, and support. How can I assist you today?"
)

QUICK_QUESTIONS = {
    "Diet & Nutrition": "What should I know about diet for Thalassemia?",
    "Treatment Options": "What are the treatment options?",
    "Symptoms": "What symptoms should I watch for?",
    "Support Groups": "Where can I find support?",
}

SETUP_STEPS = [
    "Create a Supabase project at https://supabase.com",
    "Create a donors table with columns name, blood_group, age, location, email, phone_number, last_donated",
    "Set SUPABASE_URL and SUPABASE_KEY in the environment (or a .env file loaded by your process manager)",
    "Restart the server",
]

# ------------------------------------
# Error handling
# ------------------------------------
@app.exception_handler(StarletteHTTPException)
async def not_found_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code != status.HTTP_404_NOT_FOUND or exc.detail != "Not Found":
        return await http_exception_handler(request, exc)
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": "Page not found", "path": request.url.path, "pages": PAGES},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Something went wrong",
            "message": "We're sorry, but something unexpected happened. Please try again.",
        },
    )

# ------------------------------------
# Home & Setup
# ------------------------------------
def setup_status() -> SetupStatus:
    configured = database.is_configured()
    return SetupStatus(
        configured=configured,
        supabase_url="Set" if database.supabase_url() else "Not Set",
        supabase_key="Set" if database.supabase_key() else "Not Set",
        donor_table=database.DONOR_TABLE,
        steps=[] if configured else SETUP_STEPS,
        env_example=None if configured else database.ENV_EXAMPLE,
    )


@app.get("/")
def home():
    response = {
        "message": "Lifeware Donor API running",
        "donor_count": get_donor_count(),
        "backend_configured": database.is_configured(),
        "blood_groups": BLOOD_GROUPS,
        "pages": PAGES,
    }
    if not response["backend_configured"]:
        response["setup"] = setup_status().model_dump()
        response["notice"] = "Showing demo data until Supabase is configured."
    return response


@app.get("/setup", response_model=SetupStatus)
def setup():
    return setup_status()

# ------------------------------------
# Donors
# ------------------------------------
@app.get("/donors", response_model=DonorList)
def list_donors(
    q: Optional[str] = Query(None, description="Name or location"),
    blood_group: Optional[str] = Query(None, pattern="^(A|B|AB|O)[+-]$"),
    location: Optional[str] = Query(None, description="City or state"),
):
    if q or blood_group or location:
        donors = search_donors(search_query=q, blood_group=blood_group, location=location)
    else:
        donors = get_donors()
    filtered = filter_donors(donors, search_query=q, blood_group=blood_group, location=location)
    return DonorList(donors=filtered, count=len(filtered), total=len(donors))


@app.get("/donors/count")
def donor_count():
    return {"count": get_donor_count()}


@app.post("/donors", response_model=Donor, status_code=status.HTTP_201_CREATED)
@app.post("/register-donor", response_model=Donor, status_code=status.HTTP_201_CREATED)
def register(registration: DonorRegistration):
    try:
        return register_donor(registration)
    except BackendNotConfigured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Donor registration is unavailable until the database is configured. See /setup.",
        )
    except RegistrationError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to register. Please try again.",
        )

# ------------------------------------
# Chat assistant
# ------------------------------------
@app.get("/chat", response_model=ChatIntro)
def chat_intro():
    return ChatIntro(greeting=GREETING, quick_questions=QUICK_QUESTIONS)


@app.post("/chat", response_model=ChatReply)
def chat(payload: ChatPayload):
    reply = send_chat_message(payload.message.strip(), payload.history)
    return ChatReply(reply=reply, created_at=datetime.now(timezone.utc))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
