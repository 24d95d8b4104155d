"""In-memory stand-in for the MVC Music Store, served through a fake requests session."""

from urllib.parse import parse_qsl, quote, urlsplit

import pytest
import requests

AUTH_COOKIE = ".AspNet.Microsoft.AspNet.Identity.Application"
TOKEN_FIELD = "__RequestVerificationToken"
BASE_URL = "http://localhost:5004/"

LAYOUT = """<html><head><title>{title}</title></head><body>
<div class="navbar">ASP.NET MVC Music Store
<ul class="nav"><li><a href="/">Home</a></li>
<li class="dropdown"><a href="/Store" class="dropdown-toggle" data-toggle="dropdown">Store <b class="caret"></b></a>
<ul class="dropdown-menu"><li><a href="/Store/Browse?Genre=Rock">Rock</a></li><li class="divider"></li></ul></li>
<li><a href="/ShoppingCart"><span class="glyphicon glyphicon glyphicon-shopping-cart"></span> Cart</a></li></ul>
{account}
</div>
{content}
<footer><a href="http://mvcmusicstore.codeplex.com">mvcmusicstore.codeplex.com</a></footer>
</body></html>"""


def _form(action, fields="", token=True):
    hidden = f'<input name="{TOKEN_FIELD}" type="hidden" value="token-{action}" />' if token else ""
    return f'<form action="{action}" method="post">{hidden}{fields}</form>'


class FakeResponse:
    def __init__(self, status_code, text, url):
        self.status_code = status_code
        self.text = text
        self.url = url


class FakeStorefront:
    """Server-side state shared by every session talking to one fake storefront."""

    def __init__(self, base_url=BASE_URL):
        self.base_url = base_url
        self.users = {"Administrator@test.com": "YouShouldChangeThisPassword1!"}
        self.admins = {"Administrator@test.com"}
        self.albums = {}
        self.next_album_id = 100
        self.next_order_id = 1
        self.carts = {}
        self.requests = []
        self.keeps_cookies_on_logout = False
        self.stale_redirect_url = False
        self.signs_in_on_password_mismatch = False
        self.missing_tokens = set()
        self.overrides = {}
        self.unreachable_attempts = 0

    def session_factory(self):
        return FakeSession(self)

    # -- rendering ---------------------------------------------------------

    def page(self, session, title, content):
        user = session.current_user()
        if user:
            account = f"Hello {user}! " + _form(
                "/Account/LogOff",
                '<a href="javascript:document.forms[0].submit()">Log off</a>',
                token="/Account/LogOff" not in self.missing_tokens,
            )
        else:
            account = '<a href="/Account/Register">Register</a> <a href="/Account/Login">Login</a>'
        return LAYOUT.format(title=title, account=account, content=content)

    def home(self, session):
        albums = "".join(
            f'<a href="/Store/Details/{album_id}">{title}</a>' for album_id, title in self.albums.items()
        )
        content = (
            '<img src="/Images/home-showcase.png" />'
            f'<a href="/Store/Details/1">Greatest Hits</a>{albums}'
        )
        return self.page(session, "Home Page – MVC Music Store", content)

    def login_page(self, session, errors=""):
        fields = '<input name="Email" /><input name="Password" type="password" />'
        content = f"<h4>Use a local account to log in.</h4>{errors}" + _form(
            "/Account/Login",
            fields,
            token="/Account/Login" not in self.missing_tokens,
        )
        return self.page(session, "Log in – MVC Music Store", content)

    def register_page(self, session, errors=""):
        content = errors + _form(
            "/Account/Register",
            '<input name="Email" />',
            token="/Account/Register" not in self.missing_tokens,
        )
        return self.page(session, "Register – MVC Music Store", content)

    # -- routing -----------------------------------------------------------

    def handle(self, session, method, url, data):
        parts = urlsplit(url)
        path = parts.path
        query = dict(parse_qsl(parts.query))
        form = dict(data or [])
        self.requests.append((method, path + (f"?{parts.query}" if parts.query else "")))

        if self.unreachable_attempts > 0:
            self.unreachable_attempts -= 1
            raise requests.ConnectionError("connection refused")

        override = self.overrides.get((method, path))
        if override is not None:
            status_code, body = override[:2]
            final_url = self.absolute(override[2]) if len(override) > 2 else url
            return FakeResponse(status_code, body, final_url)

        user = session.current_user()
        is_admin = user in self.admins

        if method == "POST" and TOKEN_FIELD in form and form[TOKEN_FIELD] != f"token-{path}":
            return FakeResponse(400, "Bad anti-forgery token", url)

        if path == "/" and method == "GET":
            return self.ok(self.home(session), url)

        if path in ("/favicon.ico", "/Content/bootstrap.css"):
            return self.ok("static", url)

        if path.startswith("/Admin/") and not is_admin:
            target = self.absolute(f"Account/Login?ReturnUrl={quote(path, safe='')}")
            return self.redirected(self.login_page(session), url, target)

        if path == "/Account/Register":
            if method == "GET":
                return self.ok(self.register_page(session), url)
            email = form.get("Email")
            if form.get("Password") != form.get("ConfirmPassword"):
                if self.signs_in_on_password_mismatch:
                    session.sign_in(email)
                errors = (
                    '<div class="validation-summary-errors text-danger" data-valmsg-summary="true">'
                    "<ul><li>The password and confirmation password do not match.</li></ul></div>"
                )
                return self.ok(self.register_page(session, errors), url)
            if email in self.users:
                errors = (
                    '<div class="validation-summary-errors text-danger" data-valmsg-summary="true">'
                    f"<ul><li>Name {email} is already taken.</li></ul></div>"
                )
                return self.ok(self.register_page(session, errors), url)
            self.users[email] = form.get("Password")
            session.sign_in(email)
            return self.redirected(self.home(session), url, self.absolute(""))

        if path == "/Account/Login":
            if method == "GET":
                return self.ok(self.login_page(session), url)
            email = form.get("Email")
            if self.users.get(email) != form.get("Password"):
                errors = '<div class="validation-summary-errors text-danger"><ul><li>Invalid login attempt.</li></ul></div>'
                return self.ok(self.login_page(session, errors), url)
            session.sign_in(email)
            return self.redirected(self.home(session), url, self.absolute(""))

        if path == "/Account/LogOff" and method == "POST":
            if not self.keeps_cookies_on_logout:
                session.sign_out()
            return self.redirected(self.home(session), url, self.absolute(""))

        if path == "/Manage/ChangePassword":
            if method == "GET":
                return self.ok(self.page(session, "Change Password", _form("/Manage/ChangePassword")), url)
            if self.users.get(user) != form.get("OldPassword"):
                return self.ok(self.page(session, "Change Password", "Incorrect password."), url)
            self.users[user] = form.get("NewPassword")
            return self.ok(self.page(session, "Manage", "Your password has been changed."), url)

        if path.rstrip("/") == "/Admin/StoreManager" and method == "GET":
            return self.ok(self.store_manager(session), url)

        if path == "/Admin/StoreManager/create":
            if method == "GET":
                return self.ok(self.page(session, "Create", _form("/Admin/StoreManager/create")), url)
            album_id = str(self.next_album_id)
            self.next_album_id += 1
            self.albums[album_id] = form["Title"]
            self.art_url = form["AlbumArtUrl"]
            return self.redirected(self.store_manager(session), url, self.absolute("Admin/StoreManager"))

        if path == "/Admin/StoreManager/GetAlbumIdFromName":
            for album_id, title in self.albums.items():
                if title == query.get("albumName"):
                    return self.ok(album_id, url)
            return FakeResponse(404, "", url)

        if path == "/Admin/StoreManager/Details":
            album_id = query.get("id")
            content = (
                f"<dd>{self.albums[album_id]}</dd><dd>{self.art_url}</dd>"
                f'<a href="/Admin/StoreManager/Edit?id={album_id}">Edit</a> |'
                '<a href="/Admin/StoreManager">Back to List</a>'
            )
            return self.ok(self.page(session, "Details", content), url)

        if path == "/Admin/StoreManager/RemoveAlbum" and method == "POST":
            self.albums.pop(form.get("id"), None)
            return self.ok(self.page(session, "Removed", "Album removed"), url)

        if path == "/ShoppingCart/AddToCart":
            album_id = query.get("id")
            self.carts.setdefault(user, []).append(album_id)
            items = "".join(f"<td>{self.albums[item]}</td>" for item in self.carts[user])
            return self.redirected(self.page(session, "Shopping Cart", items), url, self.absolute("ShoppingCart"))

        if path == "/Checkout/AddressAndPayment":
            if method == "GET":
                return self.ok(self.page(session, "Address And Payment", _form("/Checkout/AddressAndPayment")), url)
            order_id = self.next_order_id
            self.next_order_id += 1
            self.carts.pop(user, None)
            return self.redirected(
                self.page(session, "Checkout Complete", "<h2>Checkout Complete</h2>"),
                url,
                self.absolute(f"Checkout/Complete/{order_id}"),
            )

        return FakeResponse(404, "Not Found", url)

    def store_manager(self, session):
        rows = "".join(f"<tr><td>{title}</td></tr>" for title in self.albums.values())
        return self.page(session, "Store Manager", f"<table>{rows}</table>")

    def absolute(self, path):
        return f"{self.base_url}{path}"

    def ok(self, body, url):
        return FakeResponse(200, body, url)

    def redirected(self, body, requested_url, final_url):
        return FakeResponse(200, body, requested_url if self.stale_redirect_url else final_url)


class FakeSession:
    """Mimics the parts of ``requests.Session`` the driver relies on."""

    def __init__(self, storefront):
        self.storefront = storefront
        self.cookies = requests.cookies.RequestsCookieJar()
        self.closed = False

    def current_user(self):
        return self.cookies.get(AUTH_COOKIE)

    def sign_in(self, email):
        self.cookies.set(AUTH_COOKIE, email)

    def sign_out(self):
        if AUTH_COOKIE in self.cookies:
            del self.cookies[AUTH_COOKIE]

    def request(self, method, url, data=None, allow_redirects=True, timeout=None):
        return self.storefront.handle(self, method, url, data)

    def close(self):
        self.closed = True


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None

    def error(self, *_args, **_kwargs):
        return None

    def exception(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


@pytest.fixture
def storefront():
    return FakeStorefront()


@pytest.fixture
def dummy_logger():
    return DummyLogger()


@pytest.fixture
def dummy_console():
    return DummyConsole()
