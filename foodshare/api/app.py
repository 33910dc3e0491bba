"""FastAPI web application for foodshare."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from foodshare.api.auth_models import (
    AuthResponse,
    LoginRequest,
    LogoutResponse,
    SessionResponse,
    SignUpRequest,
)
from foodshare.auth.dependencies import get_optional_session, get_session, session_setup_errors
from foodshare.auth.identity import IdentityService
from foodshare.auth.tokens import issue_token
from foodshare.database.database import get_db, init_db
from foodshare.database.notification_repository import NotificationRepository
from foodshare.database.user_repository import UserRepository
from foodshare.engine.access import gate_path, navigation_for
from foodshare.engine.errors import FoodShareError, ProviderError
from foodshare.engine.lifecycle import DonationLifecycle
from foodshare.engine.notifications import NotificationFeed
from foodshare.engine.profiles import ProfileService, UserAdministration
from foodshare.engine.session import (
    SessionContext,
    create_signup_profile,
    landing_path,
    redirect_after_logout,
    redirect_after_resolve,
    resolve_session,
    validate_signup_role,
)
from foodshare.models.constants import LOGIN_PATH
from foodshare.models.donation import Donation, DonationCategory, DonationSort, DonationStatus
from foodshare.models.notification import Notification
from foodshare.models.user import User
from foodshare.realtime.change_feed import ChangeEvent, ChangeFeed, Collection, get_change_feed

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# Initialize FastAPI app
app = FastAPI(
    title="foodshare API",
    description="Connects food donors with NGOs that collect surplus food",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(FoodShareError)
async def foodshare_error_handler(request: Request, exc: FoodShareError):
    """Map operation failures to JSON errors; 401s also tell the client where to log in."""
    content: Dict[str, Any] = {"detail": exc.message}
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        content["redirect"] = LOGIN_PATH
    if isinstance(exc, ProviderError) and exc.__cause__ is not None:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc.__cause__).__name__}: {str(exc.__cause__)}")
    return JSONResponse(status_code=exc.status_code, content=content)


# Request models
class DonationCreateRequest(BaseModel):
    """Request to list a new donation. Missing fields are reported by the lifecycle engine."""
    food_item: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[str] = None
    expiry_date: Optional[str] = Field(None, description="ISO date, YYYY-MM-DD")
    pickup_location: Optional[str] = None
    contact_info: Optional[str] = None
    notes: Optional[str] = None


class DonationUpdateRequest(BaseModel):
    """Partial update of an available donation. Omitted fields are unchanged."""
    food_item: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[str] = None
    expiry_date: Optional[str] = None
    pickup_location: Optional[str] = None
    contact_info: Optional[str] = None
    notes: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    contact_info: Optional[str] = None
    organization_name: Optional[str] = None


class RoleUpdateRequest(BaseModel):
    role: str


class NotificationSendRequest(BaseModel):
    user_id: str
    message: str
    donation_id: Optional[str] = None


# Response models
class DonationResponse(BaseModel):
    donation: Donation


class DonationListResponse(BaseModel):
    donations: List[Donation]
    count: int


class NotificationListResponse(BaseModel):
    notifications: List[Notification]
    count: int
    unread: int


class MarkAllReadResponse(BaseModel):
    marked: List[str]
    failed: List[str]


class UserListResponse(BaseModel):
    users: List[User]
    count: int


def _lifecycle(db: Session, feed: ChangeFeed) -> DonationLifecycle:
    return DonationLifecycle.for_db(db, feed)


def _notification_feed(db: Session, feed: ChangeFeed) -> NotificationFeed:
    return NotificationFeed(NotificationRepository(db, feed), UserRepository(db, feed))


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


# ---------------------------------------------------------------------------
# Authentication and session
# ---------------------------------------------------------------------------

@app.post("/auth/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def sign_up(request: SignUpRequest, db: Session = Depends(get_db)):
    """Create an account and its profile with the chosen role (donor or NGO)."""
    role = validate_signup_role(request.role)
    identity = IdentityService(db).sign_up(request.email, request.password)
    with session_setup_errors(identity):
        profile = create_signup_profile(UserRepository(db), identity, request.name, role)
    return AuthResponse(
        access_token=issue_token(identity),
        user=profile.model_dump(mode="json"),
        redirect=landing_path(role),
    )


@app.post("/auth/login", response_model=AuthResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Sign in; the profile is created on the fly if it is missing."""
    users = UserRepository(db)
    identity = IdentityService(db).sign_in(request.email, request.password)
    with session_setup_errors(identity):
        session = resolve_session(users, identity)
        profile = ProfileService(users).get_profile(session)
    return AuthResponse(
        access_token=issue_token(identity),
        user=profile.model_dump(mode="json"),
        redirect=redirect_after_resolve(request.path, session.role),
    )


@app.post("/auth/logout", response_model=LogoutResponse)
async def logout(path: str = Query(LOGIN_PATH, description="Client path the sign-out happened on")):
    """Tokens are discarded client-side; this only says where to go next."""
    return LogoutResponse(redirect=redirect_after_logout(path))


@app.get("/auth/session", response_model=SessionResponse)
def current_session(
    path: Optional[str] = Query(None),
    session: Optional[SessionContext] = Depends(get_optional_session),
    db: Session = Depends(get_db),
):
    """The resolved session for the bearer token, if any."""
    if session is None:
        return SessionResponse()
    profile = ProfileService(UserRepository(db)).get_profile(session)
    return SessionResponse(
        user=profile.model_dump(mode="json"),
        redirect=redirect_after_resolve(path, session.role),
    )


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

@app.get("/views/gate")
def view_gate(
    path: str = Query(..., description="Client route, e.g. /donate"),
    session: Optional[SessionContext] = Depends(get_optional_session),
):
    """Whether the client should render a view, show access denied, or go to login."""
    outcome = gate_path(path, session.role if session else None)
    return {"path": path, "outcome": outcome.value}


@app.get("/views/navigation")
def view_navigation(session: Optional[SessionContext] = Depends(get_optional_session)):
    links = navigation_for(session.role if session else None)
    return {"links": [{"path": link.path, "label": link.label} for link in links]}


# ---------------------------------------------------------------------------
# Donations
# ---------------------------------------------------------------------------

@app.post("/donations", response_model=DonationResponse, status_code=status.HTTP_201_CREATED)
def create_donation(
    request: DonationCreateRequest,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """List a new donation as available."""
    donation = _lifecycle(db, feed).create(
        session,
        food_item=request.food_item,
        category=request.category,
        quantity=request.quantity,
        expiry_date=request.expiry_date,
        pickup_location=request.pickup_location,
        contact_info=request.contact_info,
        notes=request.notes,
    )
    return DonationResponse(donation=donation)


@app.get("/donations", response_model=DonationListResponse)
def list_donations(
    status_filter: Optional[DonationStatus] = Query(None, alias="status"),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    sort: DonationSort = Query(DonationSort.CREATED_DESC),
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Browse donations with optional status/category filters, text search and sort."""
    donations = _lifecycle(db, feed).browse(
        session, status=status_filter, category=category, search=search, sort=sort
    )
    return DonationListResponse(donations=donations, count=len(donations))


@app.get("/donations/mine", response_model=DonationListResponse)
def my_donations(
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    donations = _lifecycle(db, feed).mine(session)
    return DonationListResponse(donations=donations, count=len(donations))


@app.get("/donations/categories")
def donation_categories(
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Categories in use, plus the suggested set offered by the donation form."""
    return {
        "categories": _lifecycle(db, feed).categories(session),
        "suggested": [category.value for category in DonationCategory],
    }


@app.get("/donations/{donation_id}", response_model=DonationResponse)
def get_donation(
    donation_id: str,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    return DonationResponse(donation=_lifecycle(db, feed).get(session, donation_id))


@app.put("/donations/{donation_id}", response_model=DonationResponse)
def update_donation(
    donation_id: str,
    request: DonationUpdateRequest,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Edit an available donation (donor only)."""
    changes = request.model_dump(exclude_unset=True)
    donation = _lifecycle(db, feed).edit(session, donation_id, **changes)
    return DonationResponse(donation=donation)


@app.delete("/donations/{donation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_donation(
    donation_id: str,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Delete an available donation (donor only)."""
    _lifecycle(db, feed).delete(session, donation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/donations/{donation_id}/claim", response_model=DonationResponse)
def claim_donation(
    donation_id: str,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Claim an available donation (NGO or admin, never the donor)."""
    return DonationResponse(donation=_lifecycle(db, feed).claim(session, donation_id))


@app.post("/donations/{donation_id}/collect", response_model=DonationResponse)
def collect_donation(
    donation_id: str,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Mark a claimed donation collected (donor or admin)."""
    return DonationResponse(donation=_lifecycle(db, feed).mark_collected(session, donation_id))


@app.delete("/admin/donations/{donation_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_donation(
    donation_id: str,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Admin moderation: remove a donation in any status."""
    _lifecycle(db, feed).remove(session, donation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

@app.get("/notifications", response_model=NotificationListResponse)
def list_notifications(
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    notifications = _notification_feed(db, feed).list(session)
    unread = sum(1 for n in notifications if not n.read)
    return NotificationListResponse(notifications=notifications, count=len(notifications), unread=unread)


@app.get("/notifications/unread-count")
def unread_notification_count(
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    return {"unread": _notification_feed(db, feed).unread_count(session)}


@app.post("/notifications/read-all", response_model=MarkAllReadResponse)
def mark_all_notifications_read(
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Best-effort: reports which notifications could not be marked."""
    result = _notification_feed(db, feed).mark_all_read(session)
    return MarkAllReadResponse(marked=result.marked, failed=result.failed)


@app.post("/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: str,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    notification = _notification_feed(db, feed).mark_read(session, notification_id)
    return {"notification": notification.model_dump(mode="json")}


@app.post("/admin/notifications", status_code=status.HTTP_201_CREATED)
def send_notification(
    request: NotificationSendRequest,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    notification = _notification_feed(db, feed).send(
        session, request.user_id, request.message, request.donation_id
    )
    return {"notification": notification.model_dump(mode="json")}


# ---------------------------------------------------------------------------
# Profile and user management
# ---------------------------------------------------------------------------

@app.get("/profile")
def get_profile(
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
):
    profile = ProfileService(UserRepository(db)).get_profile(session)
    return {"user": profile.model_dump(mode="json")}


@app.put("/profile")
def update_profile(
    request: ProfileUpdateRequest,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Partial update: fields left out of the body keep their stored values."""
    profile = ProfileService(UserRepository(db, feed)).update_profile(
        session, **request.model_dump(exclude_unset=True)
    )
    return {"user": profile.model_dump(mode="json")}


@app.get("/admin/users", response_model=UserListResponse)
def list_users(
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    users = UserAdministration.for_db(db, feed).list_users(session)
    return UserListResponse(users=users, count=len(users))


@app.put("/admin/users/{user_id}/role")
def change_user_role(
    user_id: str,
    request: RoleUpdateRequest,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    user = UserAdministration.for_db(db, feed).change_role(session, user_id, request.role)
    return {"user": user.model_dump(mode="json")}


@app.delete("/admin/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Delete a user's profile; their sign-in account is left in place."""
    UserAdministration.for_db(db, feed).delete_user(session, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/admin/stats")
def admin_stats(
    session: SessionContext = Depends(get_session),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    return UserAdministration.for_db(db, feed).dashboard_stats(session)


# ---------------------------------------------------------------------------
# Live updates
# ---------------------------------------------------------------------------

def stream_predicate(collection: Collection, session: SessionContext) -> Optional[Callable[[ChangeEvent], bool]]:
    """Which change events a session may watch on `collection`.

    Donations are visible to every signed-in user. Notifications are only
    delivered to their recipient; deletions carry no data and are skipped.
    """
    if collection == Collection.DONATIONS:
        return None
    if collection == Collection.NOTIFICATIONS:
        return lambda event: bool(event.data) and event.data.get("user_id") == session.identity_key
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No live stream for {collection.value}")


@app.get("/stream/{collection}")
async def stream_changes(
    collection: Collection,
    session: SessionContext = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Server-sent events for every change to `collection` visible to the caller."""
    predicate = stream_predicate(collection, session)
    logger.debug(f"Opening {collection.value} stream for {session.identity_key}")
    return StreamingResponse(
        feed.sse_stream(collection, predicate),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
