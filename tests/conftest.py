import datetime as dt
import io
import plistlib
import struct
import zipfile

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs7
from cryptography.x509.oid import NameOID

from ipagate.settings import Settings

APP_ID = "ABC.myapp"


def _self_signed(key, not_before: dt.datetime, not_after: dt.datetime) -> x509.Certificate:
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, "iPhone Distribution: Test Signer"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Org"),
    ])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def rsa_signer():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    now = dt.datetime.now(dt.timezone.utc)
    return key, _self_signed(key, now - dt.timedelta(days=1), now + dt.timedelta(days=365))


@pytest.fixture(scope="session")
def future_signer():
    """Certificate that only becomes valid next week."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    now = dt.datetime.now(dt.timezone.utc)
    return key, _self_signed(key, now + dt.timedelta(days=7), now + dt.timedelta(days=365))


@pytest.fixture(scope="session")
def ec_signer():
    key = ec.generate_private_key(ec.SECP256R1())
    now = dt.datetime.now(dt.timezone.utc)
    return key, _self_signed(key, now - dt.timedelta(days=1), now + dt.timedelta(days=365))


def profile_plist(app_id=APP_ID, fmt=plistlib.FMT_XML) -> bytes:
    doc = {
        "AppIDName": "My App",
        "CreationDate": dt.datetime(2024, 1, 2, 3, 4, 5),
        "DeveloperCertificates": [b"\x30\x82\x01\x00fake-cert"],
        "Entitlements": {
            "application-identifier": app_id,
            "get-task-allow": False,
            "keychain-access-groups": ["ABC.*"],
        },
        "ExpirationDate": dt.datetime(2030, 1, 2, 3, 4, 5),
        "Name": "My App Distribution",
        "TeamIdentifier": ["ABC"],
        "TimeToLive": 365,
        "UUID": "00000000-1111-2222-3333-444444444444",
        "Version": 1,
    }
    return plistlib.dumps(doc, fmt=fmt)


def sign_payload(payload: bytes, signer, options=None) -> bytes:
    key, cert = signer
    opts = [pkcs7.PKCS7Options.Binary] + list(options or [])
    return (
        pkcs7.PKCS7SignatureBuilder()
        .set_data(payload)
        .add_signer(cert, key, hashes.SHA256())
        .sign(serialization.Encoding.DER, opts)
    )


def build_zip(members: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buf.getvalue()


def nested_bplist(depth: int) -> bytes:
    """Binary plist of ``depth`` arrays, each holding only the next one."""
    body = bytearray(b"bplist00")
    offsets = []
    for i in range(depth - 1):
        offsets.append(len(body))
        body += b"\xa1" + (i + 1).to_bytes(2, "big")
    offsets.append(len(body))
    body += b"\xa0"
    table_offset = len(body)
    for off in offsets:
        body += off.to_bytes(4, "big")
    body += struct.pack(">6xBBQQQ", 4, 2, depth, 0, table_offset)
    return bytes(body)


@pytest.fixture
def make_profile():
    return profile_plist


@pytest.fixture
def deep_plist():
    return nested_bplist(5000)


@pytest.fixture
def sign(rsa_signer):
    def _sign(payload: bytes, signer=None, options=None) -> bytes:
        return sign_payload(payload, signer or rsa_signer, options)
    return _sign


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
def make_ipa(rsa_signer):
    """Build an .ipa with one signed provisioning profile for ``app_id``."""
    def _make(app_id=APP_ID, extra: dict | None = None) -> bytes:
        members = {
            "Payload/MyApp.app/Info.plist": plistlib.dumps({"CFBundleIdentifier": "com.example.myapp"}),
            "Payload/MyApp.app/MyApp": b"\xcf\xfa\xed\xfe" + b"\x00" * 64,
            "Payload/MyApp.app/embedded.mobileprovision": sign_payload(profile_plist(app_id), rsa_signer),
        }
        members.update(extra or {})
        return build_zip(members)
    return _make


@pytest.fixture
def settings(tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return Settings(appid=APP_ID, data_dir=data_dir)
