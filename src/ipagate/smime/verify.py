"""CMS / PKCS#7 SignedData verification for provisioning profiles.

Verification is self-contained: every signer must be backed by a certificate
carried inside the message, and no external trust store is consulted. Only
RSA PKCS#1 v1.5 signatures are accepted, which is what Apple signs
provisioning profiles with.
"""
from __future__ import annotations

import hashlib
import hmac
from datetime import datetime
from typing import Any

from asn1crypto import cms, core
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..errors import SignatureParseError, SignatureVerificationError

_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}

_RSA_SIGNATURE_ALGOS = {"rsassa_pkcs1v15"}


def _parse(blob: bytes) -> tuple[cms.SignedData, str, bytes]:
    try:
        info = cms.ContentInfo.load(blob, strict=True)
        if info["content_type"].native != "signed_data":
            raise SignatureParseError(f"unexpected content type {info['content_type'].native}")
        signed = info["content"]
        encap = signed["encap_content_info"]
        content_type = encap["content_type"].native
        content = encap["content"]
        if isinstance(content, core.Void):
            raise SignatureParseError("detached signature carries no content")
        payload = content.native
        if not isinstance(payload, bytes):
            raise SignatureParseError("encapsulated content is not an octet string")
    except SignatureParseError:
        raise
    except (ValueError, TypeError, KeyError, IndexError, OverflowError, RecursionError) as e:
        raise SignatureParseError(f"failed to parse pkcs7: {e}") from e
    return signed, content_type, payload


def _certificates(signed: cms.SignedData) -> list[Any]:
    certs = signed["certificates"]
    if isinstance(certs, core.Void):
        return []
    return [c.chosen for c in certs if c.name == "certificate"]


def _find_signer_cert(sid: cms.SignerIdentifier, certs: list[Any]):
    for cert in certs:
        if sid.name == "issuer_and_serial_number":
            ias = sid.chosen
            if cert.serial_number == ias["serial_number"].native and cert.issuer == ias["issuer"]:
                return cert
        elif sid.name == "subject_key_identifier":
            if cert.key_identifier is not None and cert.key_identifier == sid.chosen.native:
                return cert
    return None


def _signed_attrs(attrs: cms.CMSAttributes) -> dict[str, Any]:
    """Map attribute name to its single value, still undecoded."""
    out: dict[str, Any] = {}
    for attr in attrs:
        name = attr["type"].native
        values = attr["values"]
        if len(values) != 1:
            raise SignatureVerificationError(f"attribute {name} must carry exactly one value")
        if name in out:
            raise SignatureVerificationError(f"duplicate attribute {name}")
        out[name] = values[0]
    return out


def _verify_signer(signer: cms.SignerInfo, certs: list[Any], content_type: str, payload: bytes) -> None:
    asn1_cert = _find_signer_cert(signer["sid"], certs)
    if asn1_cert is None:
        raise SignatureVerificationError("no certificate found for signer")

    digest_name = signer["digest_algorithm"]["algorithm"].native
    hash_cls = _HASHES.get(digest_name)
    if hash_cls is None:
        raise SignatureVerificationError(f"unsupported digest algorithm {digest_name}")
    sig_algo = signer["signature_algorithm"].signature_algo
    if sig_algo not in _RSA_SIGNATURE_ALGOS:
        raise SignatureVerificationError(f"unsupported signature algorithm {sig_algo}")

    try:
        cert = x509.load_der_x509_certificate(asn1_cert.dump())
    except ValueError as e:
        raise SignatureVerificationError(f"bad signer certificate: {e}") from e
    public_key = cert.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise SignatureVerificationError("signer certificate does not hold an RSA key")

    attrs = signer["signed_attrs"]
    if isinstance(attrs, core.Void) or len(attrs) == 0:
        signed_bytes = payload
    else:
        found = _signed_attrs(attrs)
        if "message_digest" not in found:
            raise SignatureVerificationError("missing message digest attribute")
        expected_digest = found["message_digest"].native
        actual_digest = hashlib.new(digest_name, payload).digest()
        if not isinstance(expected_digest, bytes) or not hmac.compare_digest(expected_digest, actual_digest):
            raise SignatureVerificationError("message digest mismatch")
        if "content_type" in found and found["content_type"].native != content_type:
            raise SignatureVerificationError("content type attribute mismatch")
        signing_time = found["signing_time"].native if "signing_time" in found else None
        if isinstance(signing_time, datetime):
            if not (cert.not_valid_before_utc <= signing_time <= cert.not_valid_after_utc):
                raise SignatureVerificationError("signing time not within certificate validity")
        # The signature covers the attributes DER-encoded as a SET OF, not the [0] IMPLICIT tag
        encoded = attrs.dump()
        signed_bytes = b"\x31" + encoded[1:]

    signature = signer["signature"].native
    try:
        public_key.verify(signature, signed_bytes, padding.PKCS1v15(), hash_cls())
    except InvalidSignature as e:
        raise SignatureVerificationError("signature does not match") from e


def verify_signed_data(blob: bytes) -> bytes:
    """Verify a DER SignedData blob and return its encapsulated payload."""
    signed, content_type, payload = _parse(blob)
    try:
        signers = list(signed["signer_infos"])
        certs = _certificates(signed)
    except (ValueError, TypeError, KeyError) as e:
        raise SignatureParseError(f"failed to parse pkcs7: {e}") from e
    if not signers:
        raise SignatureVerificationError("message has no signers")
    for signer in signers:
        try:
            _verify_signer(signer, certs, content_type, payload)
        except (ValueError, TypeError, KeyError) as e:
            raise SignatureVerificationError(f"failed to verify: {e}") from e
    return payload
