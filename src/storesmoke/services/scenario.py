"""The scripted MVC Music Store journey.

Every public method is one verification unit. ``StoreScenario.steps`` lists
them in the order a run must execute them; the runner stops at the first one
that raises.
"""

import uuid
from functools import partial
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import quote

from storesmoke.constants import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    ALBUM_NAME_LENGTH,
    ANTIFORGERY_FIELD,
    AUTH_COOKIE_NAME,
    CHECKOUT_FORM,
    GENERATED_EMAIL_DOMAIN,
    INVALID_PASSWORD,
    READINESS_INTERVAL_SECONDS,
    USER_NEW_PASSWORD,
    USER_PASSWORD,
)
from storesmoke.errors import ScenarioAssertionError, TokenExtractionError, UnexpectedStatusError
from storesmoke.errors_catalog import actionable_error
from storesmoke.models import Album, RunContext, ScenarioState, UserIdentity
from storesmoke.services.http_session import HttpResult
from storesmoke.services.token_extractor import retrieve_antiforgery_token

SITE_NAME = "ASP.NET MVC Music Store"
LAYOUT_FRAGMENTS = (
    SITE_NAME,
    '<li><a href="/">Home</a></li>',
    '<a href="/Store" class="dropdown-toggle" data-toggle="dropdown">Store <b class="caret"></b></a>',
    '<ul class="dropdown-menu">',
    '<li class="divider"></li>',
)
HOME_PAGE_FRAGMENTS = (
    '<a href="/Store/Details/',
    "<title>Home Page – MVC Music Store</title>",
    "Register",
    "Login",
    "mvcmusicstore.codeplex.com",
    "/Images/home-showcase.png",
)
SIGNED_OUT_FRAGMENTS = (
    SITE_NAME,
    "Register",
    "Login",
    "mvcmusicstore.codeplex.com",
    "/Images/home-showcase.png",
)
LOGIN_PAGE_FRAGMENTS = (
    "<title>Log in – MVC Music Store</title>",
    "<h4>Use a local account to log in.</h4>",
)
PASSWORD_MISMATCH_ERROR = (
    '<div class="validation-summary-errors text-danger" data-valmsg-summary="true">'
    "<ul><li>The password and confirmation password do not match.</li>"
)
INVALID_LOGIN_ERROR = '<div class="validation-summary-errors text-danger"><ul><li>Invalid login attempt.</li>'
CART_ICON = '<span class="glyphicon glyphicon glyphicon-shopping-cart"></span>'

Step = Tuple[ScenarioState, Callable[[], None]]


def generate_email() -> str:
    return f"{uuid.uuid4().hex}@{GENERATED_EMAIL_DOMAIN}"


def generate_album_title() -> str:
    return uuid.uuid4().hex[:ALBUM_NAME_LENGTH]


class StoreScenario:
    """Drives one user journey through a running storefront."""

    def __init__(self, context: RunContext, logger, startup_retries: int = 60):
        self.context = context
        self.driver = context.driver
        self.variation = context.variation
        self.logger = logger
        self.startup_retries = startup_retries

        self.user: Optional[UserIdentity] = None
        self.admin = UserIdentity(email=ADMIN_EMAIL, password=ADMIN_PASSWORD, is_admin=True)
        self.album: Optional[Album] = None
        self.previous_password: Optional[str] = None

    def steps(self) -> List[Step]:
        return [
            (ScenarioState.HOME_PAGE_VERIFIED, self.verify_home_page),
            (ScenarioState.STATIC_CONTENT_VERIFIED, self.verify_static_content),
            (ScenarioState.ANONYMOUS_ACCESS_DENIED, self.access_store_without_permissions),
            (ScenarioState.REGISTRATION_VALIDATION, self.register_user_with_non_matching_passwords),
            (ScenarioState.USER_REGISTERED, self.register_valid_user),
            (ScenarioState.DUPLICATE_REGISTRATION_REJECTED, self.register_existing_user),
            (ScenarioState.SIGNED_OUT, self.sign_out_user),
            (ScenarioState.INVALID_LOGIN_REJECTED, partial(self.sign_in_with_invalid_password, INVALID_PASSWORD)),
            (ScenarioState.SIGNED_IN, self.sign_in_user),
            (ScenarioState.PASSWORD_CHANGED, self.change_password),
            (ScenarioState.OLD_PASSWORD_REJECTED, self.reject_old_password),
            (ScenarioState.NEW_PASSWORD_ACCEPTED, self.sign_in_user),
            (ScenarioState.RESTRICTED_ACCESS_DENIED_FOR_NON_ADMIN, self.access_store_without_permissions),
            (ScenarioState.SIGNED_OUT_AGAIN, self.sign_out_user),
            (ScenarioState.ADMIN_SIGNED_IN, self.sign_in_admin),
            (ScenarioState.ADMIN_ACCESS_GRANTED, self.access_store_with_permissions),
            (ScenarioState.ALBUM_CREATED, self.create_album),
            (ScenarioState.ALBUM_DETAILS_VERIFIED, self.verify_album_details),
            (ScenarioState.ALBUM_IN_CART, self.add_album_to_cart),
            (ScenarioState.CHECKOUT_COMPLETE, self.check_out_cart_items),
            (ScenarioState.ALBUM_DELETED, self.delete_album),
            (ScenarioState.ADMIN_SIGNED_OUT, self.sign_out_admin),
        ]

    # -- assertion helpers -------------------------------------------------

    def _fail(self, message: str, result: Optional[HttpResult] = None):
        if result is None:
            raise ScenarioAssertionError(message)
        raise ScenarioAssertionError(
            message,
            status_code=result.status_code,
            body=result.body,
            url=result.url,
        )

    def _ensure_ok(self, result: HttpResult) -> HttpResult:
        if result.status_code != 200:
            raise UnexpectedStatusError(
                actionable_error(
                    "unexpected_status",
                    status_code=str(result.status_code),
                    method=result.method,
                    url=result.url,
                ),
                status_code=result.status_code,
                body=result.body,
                url=result.url,
            )
        return result

    def _get_ok(self, path: str) -> HttpResult:
        return self._ensure_ok(self.driver.get(path))

    def _expect_contains(self, result: HttpResult, fragments: Sequence[str], ignore_case: bool = True):
        body = result.body.lower() if ignore_case else result.body
        for fragment in fragments:
            needle = fragment.lower() if ignore_case else fragment
            if needle not in body:
                self._fail(f"Expected '{fragment}' in response from {result.url}.", result)

    def _expect_status(self, result: HttpResult, status_code: int):
        if result.status_code != status_code:
            self._fail(
                f"Expected status {status_code} from {result.url}, got {result.status_code}.",
                result,
            )

    def _expect_final_url(self, result: HttpResult, path: str, prefix: bool = False, redirected: bool = True):
        if redirected and not self.variation.tracks_redirect_uri:
            self.logger.debug("Skipping redirect target check for %s", self.variation.variation_id)
            return

        expected = self.driver.url_for(path)
        if prefix:
            matches = result.url.lower().startswith(expected.lower())
        else:
            matches = result.url == expected
        if not matches:
            self._fail(f"Expected to land on '{expected}', landed on '{result.url}'.", result)

    def _expect_auth_cookie(self, present: bool, result: Optional[HttpResult] = None):
        if self.driver.has_cookie(AUTH_COOKIE_NAME) != present:
            state = "set" if present else "cleared"
            self._fail(f"Expected authentication cookie to be {state}.", result)

    def _token(self, result: HttpResult, action: str) -> str:
        try:
            return retrieve_antiforgery_token(result.body, action)
        except TokenExtractionError:
            self.logger.error("Page without a usable '%s' form:\n%s", action, result.body)
            raise

    def _validate_layout_page(self, result: HttpResult):
        self._expect_contains(result, LAYOUT_FRAGMENTS)

    # -- steps ---------------------------------------------------------------

    def verify_home_page(self):
        process = self.context.process
        result = self.driver.wait_until_ready(
            "",
            max_retries=self.startup_retries,
            interval=READINESS_INTERVAL_SECONDS,
            is_alive=(lambda: not process.has_exited()) if process is not None else None,
        )
        self.logger.debug("Home page content: %s", result.body)
        self._expect_status(result, 200)
        self._validate_layout_page(result)
        self._expect_contains(result, HOME_PAGE_FRAGMENTS)
        self.logger.info("Application initialization successful.")

    def verify_static_content(self):
        self.logger.info("Validating if static contents are served..")
        self._get_ok("favicon.ico")
        self._get_ok("Content/bootstrap.css")
        self.logger.info("Verified static contents are served successfully")

    def access_store_without_permissions(self):
        self.logger.info(
            "Trying to access StoreManager that needs ManageStore claim with the current user: %s",
            self.user.email if self.user else "Anonymous",
        )
        result = self._get_ok("Admin/StoreManager/")
        self._validate_layout_page(result)
        self._expect_contains(result, LOGIN_PAGE_FRAGMENTS)
        self._expect_final_url(result, "Account/Login?ReturnUrl=%2FAdmin%2FStoreManager%2F")
        self.logger.info("Redirected to login page as expected.")

    def access_store_with_permissions(self):
        self.logger.info("Trying to access the store inventory..")
        result = self._get_ok("Admin/StoreManager/")
        self._expect_final_url(result, "Admin/StoreManager/", redirected=False)
        self.logger.info("Successfully accessed the store inventory")

    def _post_registration(self, email: str, password: str, confirm_password: str) -> HttpResult:
        page = self._get_ok("Account/Register")
        self._validate_layout_page(page)
        form = [
            ("Email", email),
            ("Password", password),
            ("ConfirmPassword", confirm_password),
            (ANTIFORGERY_FIELD, self._token(page, "/Account/Register")),
        ]
        return self.driver.post("Account/Register", form)

    def register_user_with_non_matching_passwords(self):
        email = generate_email()
        self.logger.info("Creating user '%s' with non matching password and confirm password", email)
        result = self._post_registration(email, USER_PASSWORD, USER_NEW_PASSWORD)
        self._expect_auth_cookie(False, result)
        self._expect_contains(result, [PASSWORD_MISMATCH_ERROR])
        self.logger.info("Server side model validator rejected '%s' as passwords do not match.", email)

    def register_valid_user(self):
        email = generate_email()
        self.logger.info("Creating a new user with name '%s'", email)
        result = self._post_registration(email, USER_PASSWORD, USER_PASSWORD)
        self._expect_contains(result, [f"Hello {email}!", "Log off"])
        self._expect_auth_cookie(True, result)
        self.user = UserIdentity(email=email, password=USER_PASSWORD)
        self.logger.info("Successfully registered user '%s' and signed in", email)

    def register_existing_user(self):
        email = self.user.email
        self.logger.info("Trying to register a user with name '%s' again", email)
        result = self._post_registration(email, USER_PASSWORD, USER_PASSWORD)
        self._expect_contains(result, [f"Name {email} is already taken."])
        self.logger.info("Identity rejected '%s' as it already exists in the system", email)

    def sign_out(self, label: str):
        self.logger.info("Signing out from '%s''s session", label)
        home = self._get_ok("")
        self._validate_layout_page(home)
        form = [(ANTIFORGERY_FIELD, self._token(home, "/Account/LogOff"))]
        result = self.driver.post("Account/LogOff", form)

        if self.variation.clears_cookies_on_logout:
            self._expect_contains(result, SIGNED_OUT_FRAGMENTS)
            self._expect_auth_cookie(False, result)
        else:
            self.logger.info("Client keeps cookies after logout, starting a fresh session.")
            self.driver.reset()
            self._expect_auth_cookie(False)

        self.logger.info("Successfully signed out of '%s''s session", label)

    def sign_out_user(self):
        self.sign_out(self.user.email)

    def sign_out_admin(self):
        self.sign_out("Administrator")

    def _post_login(self, email: str, password: str) -> HttpResult:
        page = self._get_ok("Account/Login")
        self.logger.info("Signing in with user '%s'", email)
        form = [
            ("Email", email),
            ("Password", password),
            (ANTIFORGERY_FIELD, self._token(page, "/Account/Login")),
        ]
        return self.driver.post("Account/Login", form)

    def sign_in_with_invalid_password(self, password: str):
        result = self._post_login(self.user.email, password)
        self._expect_contains(result, [INVALID_LOGIN_ERROR])
        self._expect_auth_cookie(False, result)
        self.logger.info("Identity successfully prevented an invalid user login.")

    def sign_in(self, identity: UserIdentity):
        result = self._post_login(identity.email, identity.password)
        self._expect_contains(result, [f"Hello {identity.email}!", "Log off"])
        self._expect_auth_cookie(True, result)
        self.logger.info("Successfully signed in with user '%s'", identity.email)

    def sign_in_user(self):
        self.sign_in(self.user)

    def sign_in_admin(self):
        self.sign_in(self.admin)

    def change_password(self):
        page = self._get_ok("Manage/ChangePassword")
        form = [
            ("OldPassword", self.user.password),
            ("NewPassword", USER_NEW_PASSWORD),
            ("ConfirmPassword", USER_NEW_PASSWORD),
            (ANTIFORGERY_FIELD, self._token(page, "/Manage/ChangePassword")),
        ]
        result = self.driver.post("Manage/ChangePassword", form)
        self._expect_contains(result, ["Your password has been changed."])
        self._expect_auth_cookie(True, result)
        self.previous_password = self.user.password
        self.user = UserIdentity(email=self.user.email, password=USER_NEW_PASSWORD)
        self.logger.info("Successfully changed the password for user '%s'", self.user.email)

    def reject_old_password(self):
        self.sign_out_user()
        self.sign_in_with_invalid_password(self.previous_password or USER_PASSWORD)

    def create_album(self):
        album = Album(title=generate_album_title())
        self.logger.info("Trying to create an album with name '%s'", album.title)
        page = self._get_ok("Admin/StoreManager/create")
        form = [
            (ANTIFORGERY_FIELD, self._token(page, "/Admin/StoreManager/create")),
            ("GenreId", album.genre_id),
            ("ArtistId", album.artist_id),
            ("Title", album.title),
            ("Price", album.price),
            ("AlbumArtUrl", album.art_url),
        ]
        result = self.driver.post("Admin/StoreManager/create", form)
        self._expect_final_url(result, "Admin/StoreManager")
        self._expect_contains(result, [album.title], ignore_case=False)
        self.logger.info("Successfully created an album with name '%s' in the store", album.title)

        album.album_id = self.fetch_album_id(album.title)
        self.album = album

    def fetch_album_id(self, title: str) -> str:
        self.logger.info("Fetching the album id of '%s'", title)
        result = self._get_ok(f"Admin/StoreManager/GetAlbumIdFromName?albumName={quote(title)}")
        album_id = result.body.strip()
        if not album_id:
            self._fail(f"Empty album id returned for '{title}'.", result)
        self.logger.info("Album id for album '%s' is '%s'", title, album_id)
        return album_id

    def verify_album_details(self):
        album = self.album
        self.logger.info("Getting details of album with id '%s'", album.album_id)
        result = self._get_ok(f"Admin/StoreManager/Details?id={album.album_id}")
        self._expect_contains(
            result,
            [
                album.title,
                album.art_url,
                f'<a href="/Admin/StoreManager/Edit?id={album.album_id}">Edit</a>',
                '<a href="/Admin/StoreManager">Back to List</a>',
            ],
        )

    def add_album_to_cart(self):
        album = self.album
        self.logger.info("Adding album id '%s' to the cart", album.album_id)
        result = self._get_ok(f"ShoppingCart/AddToCart?id={album.album_id}")
        self._expect_contains(result, [album.title, CART_ICON])
        self.logger.info("Verified that album is added to cart")

    def check_out_cart_items(self):
        self.logger.info("Checking out the cart contents...")
        page = self._get_ok("Checkout/AddressAndPayment")
        form = [(ANTIFORGERY_FIELD, self._token(page, "/Checkout/AddressAndPayment"))]
        form.extend(CHECKOUT_FORM.items())
        result = self.driver.post("Checkout/AddressAndPayment", form)
        self._expect_contains(result, ["<h2>Checkout Complete</h2>"])
        self._expect_final_url(result, "Checkout/Complete/", prefix=True)

    def delete_album(self):
        album = self.album
        self.logger.info("Deleting album '%s' from the store..", album.title)
        self._ensure_ok(self.driver.post("Admin/StoreManager/RemoveAlbum", [("id", album.album_id)]))

        self.logger.info("Verifying if the album '%s' is deleted from store", album.title)
        result = self.driver.get(f"Admin/StoreManager/GetAlbumIdFromName?albumName={quote(album.title)}")
        self._expect_status(result, 404)
        self.logger.info("Album is successfully deleted from the store.")
