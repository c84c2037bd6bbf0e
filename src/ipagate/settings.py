from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import StartupError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="IPAGATE_")

    # Expected Entitlements.application-identifier of uploaded archives
    appid: str = ""
    data_dir: Path = Path(".")
    debug: bool = False
    # Temporary uploads land here; defaults to data_dir so the final link stays on one filesystem
    tmp_dir: Optional[Path] = None
    manifest_suffix: str = "embedded.mobileprovision"
    max_upload_bytes: int = 2 * 1024 * 1024 * 1024  # 2 GiB
    max_manifest_bytes: int = 1024 * 1024  # provisioning profiles are a few KiB
    host: str = "0.0.0.0"
    port: int = 8080

    @property
    def upload_tmp_dir(self) -> Path:
        return self.tmp_dir if self.tmp_dir is not None else self.data_dir

    def require_data_dir(self) -> Path:
        """Fail startup unless data_dir exists and is a directory."""
        if not self.data_dir.exists():
            raise StartupError(f"stat error for {self.data_dir}")
        if not self.data_dir.is_dir():
            raise StartupError(f"{self.data_dir} is not dir")
        return self.data_dir
