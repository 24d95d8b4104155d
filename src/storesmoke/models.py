"""Shared domain models for storesmoke."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from storesmoke.constants import ALBUM_ART_URL, ALBUM_ARTIST_ID, ALBUM_GENRE_ID, ALBUM_PRICE
from storesmoke.errors import SmokeTestError
from storesmoke.errors_catalog import actionable_error


class HostType(str, Enum):
    HELIOS = "helios"
    WEB_LISTENER = "weblistener"
    KESTREL = "kestrel"


class RuntimeFlavor(str, Enum):
    DESKTOP_CLR = "desktopclr"
    CORE_CLR = "coreclr"
    MONO = "mono"


class Architecture(str, Enum):
    X86 = "x86"
    X64 = "x64"


class RunStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ScenarioState(str, Enum):
    """Checkpoints of the storefront journey, in the order they are reached."""

    NOT_STARTED = "not_started"
    INITIALIZING = "initializing"
    HOME_PAGE_VERIFIED = "home_page_verified"
    STATIC_CONTENT_VERIFIED = "static_content_verified"
    ANONYMOUS_ACCESS_DENIED = "anonymous_access_denied"
    REGISTRATION_VALIDATION = "registration_validation"
    USER_REGISTERED = "user_registered"
    DUPLICATE_REGISTRATION_REJECTED = "duplicate_registration_rejected"
    SIGNED_OUT = "signed_out"
    INVALID_LOGIN_REJECTED = "invalid_login_rejected"
    SIGNED_IN = "signed_in"
    PASSWORD_CHANGED = "password_changed"
    OLD_PASSWORD_REJECTED = "old_password_rejected"
    NEW_PASSWORD_ACCEPTED = "new_password_accepted"
    RESTRICTED_ACCESS_DENIED_FOR_NON_ADMIN = "restricted_access_denied_for_non_admin"
    SIGNED_OUT_AGAIN = "signed_out_again"
    ADMIN_SIGNED_IN = "admin_signed_in"
    ADMIN_ACCESS_GRANTED = "admin_access_granted"
    ALBUM_CREATED = "album_created"
    ALBUM_DETAILS_VERIFIED = "album_details_verified"
    ALBUM_IN_CART = "album_in_cart"
    CHECKOUT_COMPLETE = "checkout_complete"
    ALBUM_DELETED = "album_deleted"
    ADMIN_SIGNED_OUT = "admin_signed_out"
    COMPLETED = "completed"


def _parse_enum(enum_cls, value: Any, key: str):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as exc:
        choices = ", ".join(member.value for member in enum_cls)
        raise SmokeTestError(
            actionable_error("invalid_variation", detail=f"`{key}` must be one of {choices}, got {value!r}.")
        ) from exc


@dataclass(frozen=True)
class Variation:
    """One host/runtime/architecture combination under test.

    ``tracks_redirect_uri`` and ``clears_cookies_on_logout`` describe the HTTP
    client the runtime ships with. Mono's client neither updates the request
    URI after a 302 nor drops cookies expired on logout, so both default to
    ``not run_on_mono``.
    """

    host: HostType
    runtime: RuntimeFlavor
    architecture: Architecture
    base_url: str
    run_on_mono: bool = False
    tracks_redirect_uri: Optional[bool] = None
    clears_cookies_on_logout: Optional[bool] = None

    def __post_init__(self):
        if not self.base_url.endswith("/"):
            object.__setattr__(self, "base_url", f"{self.base_url}/")
        if self.tracks_redirect_uri is None:
            object.__setattr__(self, "tracks_redirect_uri", not self.run_on_mono)
        if self.clears_cookies_on_logout is None:
            object.__setattr__(self, "clears_cookies_on_logout", not self.run_on_mono)

    @property
    def variation_id(self) -> str:
        return f"{self.host.value}-{self.runtime.value}-{self.architecture.value}"

    def describe(self) -> str:
        return (
            f"HostType = {self.host.value}, RuntimeFlavor = {self.runtime.value}, "
            f"Architecture = {self.architecture.value}, applicationBaseUrl = {self.base_url}"
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Variation":
        if not isinstance(data, Mapping):
            raise SmokeTestError(actionable_error("invalid_variation", detail="expected a mapping."))

        missing = [key for key in ("host", "runtime", "architecture", "base_url") if not data.get(key)]
        if missing:
            raise SmokeTestError(
                actionable_error("invalid_variation", detail=f"missing {', '.join(missing)}.")
            )

        known = {
            "host",
            "runtime",
            "architecture",
            "base_url",
            "run_on_mono",
            "tracks_redirect_uri",
            "clears_cookies_on_logout",
        }
        unknown = sorted(set(data.keys()) - known)
        if unknown:
            raise SmokeTestError(
                actionable_error("invalid_variation", detail=f"unknown keys {', '.join(unknown)}.")
            )

        def _optional_flag(key: str) -> Optional[bool]:
            value = data.get(key)
            return None if value is None else bool(value)

        return cls(
            host=_parse_enum(HostType, data["host"], "host"),
            runtime=_parse_enum(RuntimeFlavor, data["runtime"], "runtime"),
            architecture=_parse_enum(Architecture, data["architecture"], "architecture"),
            base_url=str(data["base_url"]),
            run_on_mono=bool(data.get("run_on_mono", False)),
            tracks_redirect_uri=_optional_flag("tracks_redirect_uri"),
            clears_cookies_on_logout=_optional_flag("clears_cookies_on_logout"),
        )


@dataclass(frozen=True)
class UserIdentity:
    email: str
    password: str
    is_admin: bool = False


@dataclass
class Album:
    """Catalog item created and deleted during one run."""

    title: str
    album_id: Optional[str] = None
    genre_id: str = ALBUM_GENRE_ID
    artist_id: str = ALBUM_ARTIST_ID
    price: str = ALBUM_PRICE
    art_url: str = ALBUM_ART_URL


@dataclass(frozen=True)
class RunContext:
    """Everything one variation's run owns. Never shared between runs."""

    variation: Variation
    database_name: str
    process: Any
    driver: Any
    started_at: str
    started_monotonic: float

    @property
    def base_url(self) -> str:
        return self.variation.base_url


@dataclass
class RunResult:
    variation: Variation
    status: RunStatus
    database_name: Optional[str] = None
    skip_reason: Optional[str] = None
    failed_step: Optional[str] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    response_body: Optional[str] = None
    cold_start_seconds: Optional[float] = None
    scenario_seconds: Optional[float] = None
    total_seconds: Optional[float] = None
    completed_states: list = field(default_factory=list)

    @classmethod
    def skipped(cls, variation: Variation, reason: str) -> "RunResult":
        return cls(variation=variation, status=RunStatus.SKIPPED, skip_reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variation": self.variation.variation_id,
            "base_url": self.variation.base_url,
            "status": self.status.value,
            "database_name": self.database_name,
            "skip_reason": self.skip_reason,
            "failed_step": self.failed_step,
            "error": self.error,
            "status_code": self.status_code,
            "cold_start_seconds": self.cold_start_seconds,
            "scenario_seconds": self.scenario_seconds,
            "total_seconds": self.total_seconds,
        }
