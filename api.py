"""
Gateway between the HTTP routes and the two external services:
the Supabase donor table and the chat-completion endpoint.
"""

import os
import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

import database
from database import safe_operation, NotConfiguredError
from schemas import Donor, DonorRegistration, ChatMessage

logger = logging.getLogger(__name__)

CHAT_API_URL = os.getenv("CHAT_API_URL", "https://api.openai.com/v1/chat/completions")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-3.5-turbo")
CHAT_TIMEOUT = float(os.getenv("CHAT_TIMEOUT", "30"))
CHAT_MAX_TOKENS = 500
CHAT_TEMPERATURE = 0.7
# Earlier turns sent along with a new message
CHAT_HISTORY_LIMIT = 10

SYSTEM_PROMPT = (
    "You are a helpful AI health assistant specializing in Thalassemia support. "
    "Provide accurate, helpful information about diet, treatment, symptoms, and support resources. "
    "Always recommend consulting healthcare professionals for personalized medical advice."
)

EMPTY_REPLY = "Sorry, I couldn't process your request."
UNAVAILABLE_REPLY = "I'm having trouble connecting right now. Please try again later."

DEMO_DONORS = [
    {"id": 1, "full_name": "Sarah Johnson", "blood_type": "O+", "location": "New York, NY", "last_donation_date": "2024-01-15"},
    {"id": 2, "full_name": "Michael Chen", "blood_type": "A-", "location": "Los Angeles, CA", "last_donation_date": "2024-02-01"},
    {"id": 3, "full_name": "Emily Rodriguez", "blood_type": "B+", "location": "Chicago, IL", "last_donation_date": "2024-01-20"},
    {"id": 4, "full_name": "David Kim", "blood_type": "AB+", "location": "Houston, TX", "last_donation_date": "2024-02-10"},
    {"id": 5, "full_name": "Lisa Thompson", "blood_type": "O-", "location": "Phoenix, AZ", "last_donation_date": "2024-01-25"},
]


class BackendNotConfigured(Exception):
    pass


class RegistrationError(Exception):
    pass


# ------------------------------------
# Helpers
# ------------------------------------

def demo_donors() -> List[Donor]:
    return [Donor.model_validate(d) for d in DEMO_DONORS]


def _to_donors(rows: Optional[Iterable[Dict[str, Any]]]) -> List[Donor]:
    return [Donor.model_validate(r) for r in rows or []]


def contains_pattern(term: str) -> str:
    """ILIKE pattern matching ``term`` anywhere, with ``\\``, ``%`` and ``_`` taken literally.

    PostgREST still reads ``*`` as ``%``, so a ``*`` typed by the user acts as a wildcard.
    """
    for ch in ("\\", "%", "_"):
        term = term.replace(ch, "\\" + ch)
    return f"%{term}%"


def quote_filter_value(value: str) -> str:
    # double quotes keep commas and parentheses inside an or=(...) value
    value = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{value}"'


def filter_donors(
    donors: Iterable[Donor],
    search_query: Optional[str] = None,
    blood_group: Optional[str] = None,
    location: Optional[str] = None,
) -> List[Donor]:
    """Filter donors the way the directory page does.

    ``search_query`` is a case-insensitive substring of the name or the
    location, ``blood_group`` must match exactly, ``location`` is a
    case-insensitive substring of the location. Empty filters match all.
    """
    query = (search_query or "").strip().lower()
    place = (location or "").strip().lower()

    result = []
    for donor in donors:
        name = (donor.name or "").lower()
        donor_location = (donor.location or "").lower()
        if query and query not in name and query not in donor_location:
            continue
        if blood_group and donor.blood_group != blood_group:
            continue
        if place and place not in donor_location:
            continue
        result.append(donor)
    return result


# ------------------------------------
# Donors
# ------------------------------------

def get_donor_count() -> int:
    data, error = safe_operation(lambda client: client.table(database.DONOR_TABLE).select("name").execute())
    if isinstance(error, NotConfiguredError):
        return len(DEMO_DONORS)
    if error:
        logger.error("Error fetching donor count: %s", error)
        return 0
    return len(data or [])


def get_donors() -> List[Donor]:
    data, error = safe_operation(
        lambda client: client.table(database.DONOR_TABLE).select("*").order("name", desc=False).execute()
    )
    if isinstance(error, NotConfiguredError):
        return demo_donors()
    if error:
        logger.error("Error fetching donors: %s", error)
        return []
    return _to_donors(data)


def search_donors(
    search_query: Optional[str] = None,
    blood_group: Optional[str] = None,
    location: Optional[str] = None,
) -> List[Donor]:
    location = (location or "").strip()
    search_query = (search_query or "").strip()

    def run(client):
        query = client.table(database.DONOR_TABLE).select("*")
        if blood_group:
            query = query.eq("blood_group", blood_group)
        if location:
            query = query.ilike("location", contains_pattern(location))
        if search_query:
            value = quote_filter_value(contains_pattern(search_query))
            query = query.or_(f"name.ilike.{value},location.ilike.{value}")
        return query.order("name", desc=False).execute()

    data, error = safe_operation(run)
    if isinstance(error, NotConfiguredError):
        return filter_donors(demo_donors(), search_query, blood_group, location)
    if error:
        logger.error("Error searching donors: %s", error)
        return []
    return _to_donors(data)


def register_donor(registration: DonorRegistration) -> Donor:
    row = registration.model_dump(mode="json")
    data, error = safe_operation(lambda client: client.table(database.DONOR_TABLE).insert([row]).execute())

    if isinstance(error, NotConfiguredError):
        raise BackendNotConfigured(str(error))
    if error:
        logger.error("Error registering donor: %s", error)
        raise RegistrationError(str(error))
    if not data:
        # insert succeeded but the row was not returned
        return Donor.model_validate(row)
    logger.info("Registered donor %s (%s)", registration.name, registration.blood_group)
    return Donor.model_validate(data[0])


# ------------------------------------
# Chat assistant
# ------------------------------------

def build_chat_messages(message: str, history: Optional[List[ChatMessage]] = None) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    for turn in (history or [])[-CHAT_HISTORY_LIMIT:]:
        messages.append({"role": turn.role, "content": turn.content})
    messages.append({"role": "user", "content": message})
    return messages


def send_chat_message(message: str, history: Optional[List[ChatMessage]] = None) -> str:
    api_key = os.getenv("CHAT_API_KEY")
    if not api_key:
        logger.warning("CHAT_API_KEY is not set, chat assistant unavailable")
        return UNAVAILABLE_REPLY

    payload = {
        "model": CHAT_MODEL,
        "messages": build_chat_messages(message, history),
        "max_tokens": CHAT_MAX_TOKENS,
        "temperature": CHAT_TEMPERATURE,
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    try:
        r = requests.post(CHAT_API_URL, json=payload, headers=headers, timeout=CHAT_TIMEOUT)
        r.raise_for_status()
        out = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("Error calling chatbot API: %s", e)
        return UNAVAILABLE_REPLY

    try:
        content = out["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    return (content or "").strip() or EMPTY_REPLY
