"""Shared test fixtures: a Flask app on in-memory SQLite with fake S3 and LINE."""
import base64
import hashlib
import hmac
import io

import pytest
from botocore.exceptions import ClientError
from PIL import Image

from app import create_app
from config import Config
from models.messages import InboundMessage
from services.errors import MessagingError
from services.messenger import LineMessenger
from services.object_store import ObjectStore

CHANNEL_SECRET = "test-channel-secret"
PUBLIC_BASE_URL = "https://pub-test.r2.dev"
BUCKET = "test-bucket"


class TestingConfig(Config):
    __test__ = False
    TESTING = True
    LINE_CHANNEL_SECRET = CHANNEL_SECRET
    LINE_CHANNEL_TOKEN = "test-channel-token"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    R2_ACCESS_KEY_ID = "test-key"
    R2_SECRET_ACCESS_KEY = "test-secret"
    R2_BASE_ENDPOINT = "https://account.r2.cloudflarestorage.com"
    R2_BUCKET_NAME = BUCKET
    R2_PUBLIC_BASE_URL = PUBLIC_BASE_URL
    RATELIMIT_ENABLED = False
    LOG_LEVEL = "DEBUG"


def client_error(operation):
    return ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, operation)


class FakePaginator:
    def __init__(self, s3):
        self._s3 = s3

    def paginate(self, Bucket):
        self._s3.list_calls += 1
        if "list" in self._s3.fail_on:
            raise client_error("ListObjectsV2")
        yield {"Contents": [{"Key": key} for key in sorted(self._s3.objects)]}


class FakeS3Client:
    """Just enough of the boto3 S3 client for ObjectStore."""

    def __init__(self):
        self.objects = {}
        self.fail_on = set()
        self.list_calls = 0
        self.deleted = []

    def put_object(self, Bucket, Key, Body, ContentType):
        if "put" in self.fail_on:
            raise client_error("PutObject")
        self.objects[Key] = {"body": Body, "content_type": ContentType}
        return {}

    def delete_object(self, Bucket, Key):
        if "delete" in self.fail_on:
            raise client_error("DeleteObject")
        self.deleted.append(Key)
        self.objects.pop(Key, None)
        return {}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self)


class FakeMessenger(LineMessenger):
    """Real signature checking and parsing; replies and downloads stay in memory."""

    def __init__(self):
        super().__init__(CHANNEL_SECRET, "test-channel-token")
        self.replies = []
        self.contents = {}
        self.fail_fetch = False
        self.fail_reply = False

    def reply(self, reply_token, reply):
        if self.fail_reply:
            raise MessagingError("reply failed")
        self.replies.append((reply_token, reply))

    def fetch_message_content(self, message_id):
        if self.fail_fetch:
            raise MessagingError("fetch failed")
        return self.contents[message_id]


def sign(body: str, secret: str = CHANNEL_SECRET) -> str:
    digest = hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def image_bytes(fmt: str) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buf, fmt)
    return buf.getvalue()


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def app(s3_client, messenger):
    app = create_app(TestingConfig)
    app.extensions["line_drive"]["object_store"] = ObjectStore(
        bucket=BUCKET, public_base_url=PUBLIC_BASE_URL, client=s3_client
    )
    app.extensions["line_drive"]["messenger"] = messenger
    return app


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def png_bytes():
    return image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return image_bytes("JPEG")


def message(payload, user_id="U1", reply_token="rt"):
    return InboundMessage(user_id=user_id, reply_token=reply_token, payload=payload)
