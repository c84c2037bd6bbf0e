"""Helper launcher to run the upload service without worrying about PYTHONPATH.

Usage (from project root):
  IPAGATE_APPID=ABC.myapp IPAGATE_DATA_DIR=./data python run_api.py
"""
from __future__ import annotations

import pathlib
import sys

ROOT = pathlib.Path(__file__).parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ipagate.cli import main  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main(["serve", *sys.argv[1:]]))
