"""
Pydantic schemas for the ensure-auth-account edge function contract.

The edge function owns every write; these models only describe what is sent
to it and what comes back.
"""
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActionKind(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    OTHER = "other"


def classify_action(action: Optional[str]) -> ActionKind:
    """
    Map a free-text action label onto a coarse kind.

    The edge function versions disagree on wording ('created_new_auth',
    'auth_user_created_and_linked', 'linked_existing_auth', 'already_exists'),
    so matching is by substring. 'created' wins over 'linked'.
    """
    if not action:
        return ActionKind.OTHER
    label = action.lower()
    if "created" in label:
        return ActionKind.CREATED
    if "exist" in label or "linked" in label:
        return ActionKind.ALREADY_EXISTS
    return ActionKind.OTHER


class ReconciliationRequest(BaseModel):
    """Request body: empty for every pending user, or scoped to one email."""
    single_email: Optional[str] = Field(None, description="Process exactly this user")

    @field_validator("single_email")
    @classmethod
    def _strip_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("single_email must not be blank")
        return value

    @property
    def is_scoped(self) -> bool:
        return self.single_email is not None

    def to_body(self) -> Dict[str, Any]:
        if self.single_email is None:
            return {}
        return {"single_email": self.single_email}


class PerUserOutcome(BaseModel):
    """Outcome for one targeted user. Extra keys from the function are kept."""
    model_config = ConfigDict(extra="allow")

    email: str
    success: bool
    action: Optional[str] = None
    auth_user_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def kind(self) -> ActionKind:
        return classify_action(self.action)

    @property
    def detail(self) -> str:
        """What an operator reads next to the email."""
        if self.success:
            return self.action or "ok"
        return self.error or self.action or "failed"


class ReconciliationResult(BaseModel):
    """
    Aggregate response of one invocation.

    A result with failed outcomes is still a successful call; callers check
    `requires_inspection` and `failures()` rather than catching exceptions.
    """
    model_config = ConfigDict(extra="allow")

    processed: int = 0
    successful: int = 0
    errors: int = 0
    results: List[PerUserOutcome] = Field(default_factory=list)

    @property
    def requires_inspection(self) -> bool:
        return self.processed > 0 and self.successful == 0

    @property
    def success_rate(self) -> float:
        if self.processed == 0:
            return 0.0
        return round(self.successful / self.processed * 100, 1)

    def successes(self) -> List[PerUserOutcome]:
        return [r for r in self.results if r.success]

    def failures(self) -> List[PerUserOutcome]:
        return [r for r in self.results if not r.success]

    def action_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for outcome in self.results:
            key = outcome.action or ("ok" if outcome.success else "failed")
            counts[key] = counts.get(key, 0) + 1
        return counts

    def outcome_for(self, email: str) -> Optional[PerUserOutcome]:
        wanted = email.strip().lower()
        for outcome in self.results:
            if outcome.email.lower() == wanted:
                return outcome
        return None

    def created(self) -> List[PerUserOutcome]:
        return [r for r in self.results if r.success and r.kind is ActionKind.CREATED]

    def already_existing(self) -> List[PerUserOutcome]:
        return [r for r in self.results if r.success and r.kind is ActionKind.ALREADY_EXISTS]


class SyncResponse(BaseModel):
    """Admin API view of a result, with the derived fields spelled out."""
    processed: int
    successful: int
    errors: int
    results: List[PerUserOutcome]
    requires_inspection: bool
    success_rate: float
    action_counts: Dict[str, int]

    @classmethod
    def from_result(cls, result: ReconciliationResult) -> "SyncResponse":
        return cls(
            processed=result.processed,
            successful=result.successful,
            errors=result.errors,
            results=result.results,
            requires_inspection=result.requires_inspection,
            success_rate=result.success_rate,
            action_counts=result.action_counts(),
        )


class SyncRequest(BaseModel):
    """Body for POST /api/admin/auth-accounts/sync."""
    single_email: Optional[str] = Field(None, description="Limit the run to one user")

    model_config = {
        "json_schema_extra": {
            "example": {"single_email": "jane.doe@example.com"}
        }
    }


class UserAuthStatus(BaseModel):
    email: str
    auth_user_id: Optional[str] = None

    @property
    def has_auth(self) -> bool:
        return bool(self.auth_user_id)


class UserAuthStatusResponse(BaseModel):
    email: str
    auth_user_id: Optional[str] = None
    has_auth: bool

    @classmethod
    def from_status(cls, status: UserAuthStatus) -> "UserAuthStatusResponse":
        return cls(email=status.email, auth_user_id=status.auth_user_id, has_auth=status.has_auth)


class UserRecord(BaseModel):
    """Row of the `users` table, read-only from this side."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    email: str
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    auth_user_id: Optional[str] = None
    invited: bool = False
    order_submitted: bool = False


class PendingUsersResponse(BaseModel):
    users: List[UserRecord]
    total: int


class RoleResponse(BaseModel):
    role: str
    is_admin: bool
    is_view_only: bool
    has_admin_access: bool
