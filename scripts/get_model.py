"""Download the local question-generation model described in model.lock.

Usage: python scripts/get_model.py [--force]
"""

import argparse
import hashlib
import logging
import os
import sys
import tomllib
from pathlib import Path

from dotenv import load_dotenv
from huggingface_hub import hf_hub_download

ROOT = Path(__file__).resolve().parents[1]
MODELS_DIR = ROOT / "models"
LOCK_PATH = ROOT / "model.lock"

logger = logging.getLogger("get_model")


def read_lock(path: Path = LOCK_PATH) -> tuple[str, str, str | None]:
    if not path.exists():
        raise FileNotFoundError(f"{path.name} not found. Add one before downloading models.")
    data = tomllib.loads(path.read_text(encoding="utf-8"))
    sha256 = str(data.get("sha256", "")).strip() or None
    return data["repo_id"], data["filename"], sha256


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--force", action="store_true", help="download even if the file already exists")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    MODELS_DIR.mkdir(parents=True, exist_ok=True)

    repo_id, filename, expected_sha = read_lock()
    target = MODELS_DIR / filename
    if target.exists() and not args.force:
        logger.info("Model already present at %s", target)
    else:
        logger.info("Downloading %s from %s ...", filename, repo_id)
        target = Path(
            hf_hub_download(
                repo_id=repo_id,
                filename=filename,
                local_dir=str(MODELS_DIR),
                token=os.getenv("HUGGINGFACE_TOKEN"),
            )
        )

    if expected_sha:
        logger.info("Verifying SHA-256...")
        actual_sha = sha256_file(target)
        if actual_sha.lower() != expected_sha.lower():
            logger.error("SHA mismatch: expected %s, got %s", expected_sha, actual_sha)
            return 2
        logger.info("SHA-256 OK.")

    logger.info("Model ready at: %s", target)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as exc:  # pragma: no cover
        logger.error("%s", exc)
        sys.exit(1)
