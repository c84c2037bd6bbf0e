from __future__ import annotations

from enum import Enum


class UploadStage(str, Enum):
    RECEIVING = "receiving"
    STORED = "stored"
    INSPECTING = "inspecting"
    VERIFYING = "verifying"
    DECODING = "decoding"
    CHECKING = "checking"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class GateError(Exception):
    """Base class for every failure surfaced at the HTTP boundary."""

    status_code: int = 500
    stage: UploadStage = UploadStage.RECEIVING

    def __init__(self, message: str, *, stage: UploadStage | None = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class StartupError(Exception):
    """Configuration problem that prevents the service from starting."""


# --- server faults (500) ---

class ServerFault(GateError):
    status_code = 500


class StoreError(ServerFault):
    stage = UploadStage.RECEIVING


# --- client content faults (400) ---

class RejectedUpload(GateError):
    status_code = 400


class DuplicateContentError(RejectedUpload):
    stage = UploadStage.STORED


class UploadTooLargeError(RejectedUpload):
    stage = UploadStage.RECEIVING


class ArchiveError(RejectedUpload):
    stage = UploadStage.INSPECTING


class SignatureError(RejectedUpload):
    stage = UploadStage.VERIFYING


class SignatureParseError(SignatureError):
    pass


class SignatureVerificationError(SignatureError):
    pass


class ManifestDecodeError(RejectedUpload):
    stage = UploadStage.DECODING


class ManifestShapeError(RejectedUpload):
    stage = UploadStage.CHECKING


class MissingFieldError(ManifestShapeError):
    pass


class WrongTypeError(ManifestShapeError):
    pass


class AppIdMismatchError(RejectedUpload):
    stage = UploadStage.CHECKING
