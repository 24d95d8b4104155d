"""Shared constants for storesmoke."""

AUTH_COOKIE_NAME = ".AspNet.Microsoft.AspNet.Identity.Application"
ANTIFORGERY_FIELD = "__RequestVerificationToken"

ADMIN_EMAIL = "Administrator@test.com"
ADMIN_PASSWORD = "YouShouldChangeThisPassword1!"

USER_PASSWORD = "Password~1"
USER_NEW_PASSWORD = "Password~2"
INVALID_PASSWORD = "InvalidPassword~1"
GENERATED_EMAIL_DOMAIN = "test.com"

ALBUM_GENRE_ID = "1"
ALBUM_ARTIST_ID = "1"
ALBUM_PRICE = "9.99"
ALBUM_ART_URL = "http://myapp/testurl"
ALBUM_NAME_LENGTH = 12

CHECKOUT_FORM = {
    "FirstName": "FirstNameValue",
    "LastName": "LastNameValue",
    "Address": "AddressValue",
    "City": "Redmond",
    "State": "WA",
    "PostalCode": "98052",
    "Country": "USA",
    "Phone": "PhoneValue",
    "Email": "email@email.com",
    "PromoCode": "FREE",
}

DEFAULT_CONNECTION_STRING_ENV = "SQLAZURECONNSTR_DefaultConnection"
DEFAULT_CONNECTION_STRING_TEMPLATE = "postgresql://{user}@{host}:{port}/{database}"
DEFAULT_DATABASE_PREFIX = "musicstore_"
DEFAULT_DATABASE_HOST = "localhost"
DEFAULT_DATABASE_PORT = 5432
DEFAULT_DATABASE_USER = "postgres"
DEFAULT_DATABASE_COMMAND_TIMEOUT = 60.0

RUNTIME_FLAVOR_ENV = "KRE_FLAVOR"
RUNTIME_ARCHITECTURE_ENV = "KRE_ARCHITECTURE"

DEFAULT_STOP_TIMEOUT = 5.0
DEFAULT_STARTUP_TIMEOUT = 60.0
DEFAULT_LAUNCH_GRACE_SECONDS = 0.5
READINESS_INTERVAL_SECONDS = 1.0

DEFAULT_LAUNCH_COMMANDS = {
    "helios": ["iisexpress", "/port:{port}", "/path:{app_path}"],
    "weblistener": ["dnx", "{app_path}", "web", "--server.urls", "{base_url}"],
    "kestrel": ["dnx", "{app_path}", "kestrel", "--server.urls", "{base_url}"],
}

DEFAULT_VARIATIONS = [
    {"host": "helios", "runtime": "desktopclr", "architecture": "x86", "base_url": "http://localhost:5001/"},
    {"host": "weblistener", "runtime": "desktopclr", "architecture": "x86", "base_url": "http://localhost:5002/"},
    {"host": "kestrel", "runtime": "desktopclr", "architecture": "x86", "base_url": "http://localhost:5004/"},
    {"host": "helios", "runtime": "coreclr", "architecture": "x86", "base_url": "http://localhost:5001/"},
    {"host": "weblistener", "runtime": "coreclr", "architecture": "x86", "base_url": "http://localhost:5002/"},
    {"host": "kestrel", "runtime": "coreclr", "architecture": "x86", "base_url": "http://localhost:5004/"},
    {"host": "weblistener", "runtime": "desktopclr", "architecture": "x64", "base_url": "http://localhost:5002/"},
    {
        "host": "kestrel",
        "runtime": "mono",
        "architecture": "x86",
        "base_url": "http://localhost:5004/",
        "run_on_mono": True,
    },
    {"host": "helios", "runtime": "coreclr", "architecture": "x64", "base_url": "http://localhost:5001/"},
    {"host": "kestrel", "runtime": "coreclr", "architecture": "x64", "base_url": "http://localhost:5004/"},
]
