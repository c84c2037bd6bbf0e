from __future__ import annotations

import logging
import pprint
from pathlib import Path

from .api.models import InspectionReport, PolicyDecision, UploadOutcome
from .archive.inspector import open_archive
from .errors import AppIdMismatchError, GateError, UploadStage
from .manifest.plist import decode_manifest
from .policy.appid import check_application_identifier
from .settings import Settings
from .smime.verify import verify_signed_data
from .store.content_store import ContentStore, StoredObject, UploadStream


class UploadPipeline:
    """Store an upload, then verify every embedded provisioning profile.

    The pipeline is the only place that knows the expected application
    identifier. The first failing stage aborts the whole upload.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.store = ContentStore(
            settings.data_dir,
            tmp_dir=settings.upload_tmp_dir,
            max_bytes=settings.max_upload_bytes,
        )

    def _debug(self, msg: str, *args) -> None:
        if self.settings.debug:
            logging.debug(msg, *args)

    def receive(self, stream: UploadStream) -> StoredObject:
        stored = self.store.put(stream)
        self._debug("stored %s (%d bytes)", stored.path, stored.size)
        return stored

    def check_member(self, name: str, blob: bytes) -> PolicyDecision:
        self._debug("%s: verifying %s", UploadStage.VERIFYING.value, name)
        payload = verify_signed_data(blob)
        tree = decode_manifest(payload)
        if self.settings.debug:
            logging.debug("%s: decoded %s\n%s", UploadStage.DECODING.value, name, pprint.pformat(tree))
        return check_application_identifier(tree, self.settings.appid, member=name)

    def inspect(self, path: Path) -> InspectionReport:
        report = InspectionReport(path=path)
        try:
            with open_archive(path) as archive:
                members = archive.manifest_members(self.settings.manifest_suffix)
                if not members:
                    logging.info("%s has no %s; accepted without a manifest check", path, self.settings.manifest_suffix)
                for info in members:
                    report.members.append(info.filename)
                    blob = archive.read_member(info, limit=self.settings.max_manifest_bytes)
                    decision = self.check_member(info.filename, blob)
                    report.decisions.append(decision)
                    if not decision.allow:
                        raise AppIdMismatchError(decision.reason or "invalid appid")
        except GateError as e:
            self._debug("%s: %s at %s: %s", UploadStage.REJECTED.value, path, e.stage.value, e)
            raise
        self._debug("%s: %s", UploadStage.ACCEPTED.value, path)
        return report

    def process(self, stream: UploadStream) -> UploadOutcome:
        stored = self.receive(stream)
        report = self.inspect(stored.path)
        return UploadOutcome(digest=stored.digest, path=stored.path, size=stored.size, report=report)
