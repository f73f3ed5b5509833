"""
FastAPI Backend for Flashdeck - Spaced repetition vocabulary trainer

Endpoints:
    POST   /start-session       - Load catalog + progress, present the first card
    POST   /answer              - Submit a typed answer
    POST   /give-up             - Reveal the answer (counts as wrong)
    POST   /skip                - Skip the card
    POST   /next                - Move from the result screen to the next card
    POST   /filters/toggle      - Toggle a level or part filter
    GET    /stats/{user_id}     - Per-level counts for the enabled parts
    GET    /session/{user_id}   - Current session state
    DELETE /session/{user_id}   - Drop the in-memory session
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Dict, List, Literal, Optional
import asyncio
import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from vocabulary_catalog import VocabularyCatalog
from progress_store import create_store
from session import SessionController, SessionState

# ==================== Initialize ====================

app = FastAPI(
    title="Flashdeck API",
    description="Vocabulary flashcards with SM-2 scheduling",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize shared components
catalog = VocabularyCatalog()
store = create_store()  # None when PROGRESS_BACKEND=none

# Session-specific components
session_controllers: Dict[str, SessionController] = {}

# Longest a restart or delete waits for the old session's pending writes
CLOSE_TIMEOUT = float(os.getenv("PROGRESS_FLUSH_TIMEOUT", 5))


def get_controller(user_id: str) -> SessionController:
    controller = session_controllers.get(user_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Session not found. Start a new session first.")
    return controller


# ==================== Request/Response Models ====================

class StartSessionRequest(BaseModel):
    user_id: str


class UserRequest(BaseModel):
    user_id: str


class AnswerRequest(BaseModel):
    user_id: str
    answer: str


class FilterToggleRequest(BaseModel):
    user_id: str
    dimension: Literal["level", "part"]
    value: int


class CardResponse(BaseModel):
    id: int
    source: str
    part: int
    example: str
    type: Optional[str] = None
    level: int
    # Only filled in on the result screen
    target: Optional[str] = None


class SessionResponse(BaseModel):
    user_id: str
    phase: str
    card: Optional[CardResponse] = None
    is_reviewing: bool
    last_result: Optional[str] = None
    feedback_message: str
    feedback_kind: str
    filters: dict


class StatsResponse(BaseModel):
    levels: dict
    counts: List[int]
    total: int
    mastered: int
    learning: int
    score: int
    max_score: int
    percent: float


# ==================== Helper Functions ====================

def to_response(user_id: str, state: SessionState) -> SessionResponse:
    """Render session state; the answer stays hidden until the result screen."""
    card = None
    if state.current is not None:
        item = state.current.item
        card = CardResponse(
            id=item.id,
            source=item.source,
            part=item.part,
            example=item.example,
            type=item.word_type,
            level=state.current.level,
            target=item.target if state.is_reviewing else None,
        )

    return SessionResponse(
        user_id=user_id,
        phase=state.phase,
        card=card,
        is_reviewing=state.is_reviewing,
        last_result=state.last_result.value if state.last_result else None,
        feedback_message=state.feedback_message,
        feedback_kind=state.feedback_kind.value,
        filters=state.filters.to_dict(),
    )


# ==================== Endpoints ====================

@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Flashdeck API is running", "words": len(catalog)}


@app.post("/start-session", response_model=SessionResponse)
async def start_session(request: StartSessionRequest):
    """
    Start (or restart) a review session for a user.

    Loads the catalog and the user's stored progress, then presents the
    first due card.
    """
    old = session_controllers.pop(request.user_id, None)
    if old is not None:
        await asyncio.to_thread(old.close, CLOSE_TIMEOUT)

    controller = SessionController(request.user_id, catalog, store=store)
    session_controllers[request.user_id] = controller

    state = await controller.load_items()
    return to_response(request.user_id, state)


@app.post("/answer", response_model=SessionResponse)
def answer(request: AnswerRequest):
    """Check a typed answer. Blank answers are ignored."""
    controller = get_controller(request.user_id)
    return to_response(request.user_id, controller.submit_answer(request.answer))


@app.post("/give-up", response_model=SessionResponse)
def give_up(request: UserRequest):
    controller = get_controller(request.user_id)
    return to_response(request.user_id, controller.give_up())


@app.post("/skip", response_model=SessionResponse)
def skip(request: UserRequest):
    controller = get_controller(request.user_id)
    return to_response(request.user_id, controller.skip())


@app.post("/next", response_model=SessionResponse)
def next_card(request: UserRequest):
    """Present the next due card (only from the result screen)."""
    controller = get_controller(request.user_id)
    return to_response(request.user_id, controller.advance_to_next())


@app.post("/filters/toggle", response_model=SessionResponse)
def toggle_filter(request: FilterToggleRequest):
    """
    Toggle a mastery level or deck part.

    Applies from the next card on; the card on screen is kept.
    """
    controller = get_controller(request.user_id)
    state = controller.toggle_filter(request.dimension, request.value)
    return to_response(request.user_id, state)


@app.get("/stats/{user_id}", response_model=StatsResponse)
def get_stats(user_id: str):
    """Per-level counts over the enabled parts (progress dashboard)."""
    controller = get_controller(user_id)
    return StatsResponse(**controller.stats().summary())


@app.get("/session/{user_id}", response_model=SessionResponse)
def get_session(user_id: str):
    controller = get_controller(user_id)
    return to_response(user_id, controller.state)


@app.delete("/session/{user_id}")
def delete_session(user_id: str):
    """Drop the in-memory session. Stored progress is kept."""
    controller = session_controllers.pop(user_id, None)
    if controller is not None:
        controller.close(CLOSE_TIMEOUT)

    return {"status": "deleted", "user_id": user_id}


# ==================== Run Server ====================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, reload=True)
