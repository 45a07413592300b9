
import base64, binascii, re, uuid
from datetime import datetime, timezone
from itsdangerous import URLSafeTimedSerializer
from passlib.context import CryptContext
from .config import SECRET_KEY, SESSION_MAX_AGE

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MENTION_PATTERN = re.compile(r"@([A-Za-z0-9._-]+)")


def utcnow() -> datetime:
    # naive UTC, matching what the database hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(SECRET_KEY, salt="session")


def make_token(payload: dict) -> str:
    return _serializer().dumps(payload)


def read_token(token: str, max_age: int = SESSION_MAX_AGE) -> dict:
    # raises itsdangerous.BadData (SignatureExpired included) on a bad token
    return _serializer().loads(token, max_age=max_age)


def decode_data_url(data_url: str) -> bytes:
    # expects "data:<mime>;base64,....."
    if "," in data_url:
        data_url = data_url.split(",", 1)[1]
    try:
        return base64.b64decode(data_url, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("invalid base64 payload")


def clip_text(value, max_length: int = 256) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()[:max_length]


def extract_mentions(body: str) -> list[str]:
    seen = []
    for tag in MENTION_PATTERN.findall(body or ""):
        if tag not in seen:
            seen.append(tag)
    return seen


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()
