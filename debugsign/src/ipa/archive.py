import os
import shutil
import stat
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from debugsign.src.core.errors import ArchiveError, NotFoundError

PAYLOAD_DIR = "Payload"


@contextmanager
def scratch_directory(work_dir: Optional[Path] = None) -> Iterator[Path]:
    """Yield a fresh temporary directory that is removed on every exit path."""
    if work_dir:
        Path(work_dir).mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(
        prefix="debugsign-", dir=str(work_dir) if work_dir else None
    ) as temp_dir:
        yield Path(temp_dir)


def _is_within(path: str, root: str) -> bool:
    return os.path.commonpath([path, root]) == root


def _extract_symlink(zf: zipfile.ZipFile, info: zipfile.ZipInfo, dest_dir: Path) -> None:
    """Recreate a symlink entry, refusing links that point outside dest_dir"""
    root = os.path.realpath(dest_dir)
    link_path = os.path.normpath(os.path.join(root, info.filename))
    link_target = zf.read(info).decode("utf-8")
    resolved = os.path.normpath(os.path.join(os.path.dirname(link_path), link_target))
    if not _is_within(link_path, root) or not _is_within(resolved, root):
        raise ArchiveError(
            f"Symlink escapes the archive: {info.filename} -> {link_target}"
        )

    os.makedirs(os.path.dirname(link_path), exist_ok=True)
    if os.path.lexists(link_path):
        os.unlink(link_path)
    os.symlink(link_target, link_path)


def extract_ipa(ipa_path: Path, dest_dir: Path) -> Path:
    """Extract the IPA into dest_dir and return its Payload directory"""
    try:
        with zipfile.ZipFile(ipa_path) as zf:
            for info in zf.infolist():
                mode = info.external_attr >> 16
                if stat.S_ISLNK(mode):
                    _extract_symlink(zf, info, dest_dir)
                    continue

                extracted = Path(zf.extract(info, dest_dir))
                # Restore unix permissions so bundle executables stay executable
                if mode & 0o777 and not info.is_dir():
                    os.chmod(extracted, mode & 0o777)
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"Not a valid IPA archive: {ipa_path} ({e})") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ArchiveError(f"Could not extract {ipa_path}: {e}") from e

    payload_dir = Path(dest_dir) / PAYLOAD_DIR
    if not payload_dir.is_dir():
        raise NotFoundError(f"Payload directory not found in {ipa_path}")
    return payload_dir


def find_app_bundle(payload_dir: Path) -> Path:
    """Return the first .app bundle directly inside Payload"""
    apps = sorted(p for p in payload_dir.glob("*.app") if p.is_dir())
    if not apps:
        raise NotFoundError(f"No .app bundle found in {payload_dir}")
    return apps[0]


def resigned_output_path(ipa_path: Path, suffix: str = "_resigned") -> Path:
    """Return <dir>/<stem><suffix><ext> next to the input archive"""
    ipa_path = Path(ipa_path).resolve()
    extension = ipa_path.suffix or ".ipa"
    return ipa_path.with_name(f"{ipa_path.stem}{suffix}{extension}")


def package_ipa(work_dir: Path, output_path: Path) -> Path:
    """Zip work_dir/Payload into output_path, replacing any existing file.

    The archive is built inside work_dir and only moved next to the input once
    complete, so nothing beside output_path is touched.
    """
    payload_dir = Path(work_dir) / PAYLOAD_DIR
    if not payload_dir.is_dir():
        raise NotFoundError(f"Payload directory not found in {work_dir}")

    output_path = Path(output_path)
    try:
        archive = shutil.make_archive(
            str(Path(work_dir) / output_path.stem),
            "zip",
            root_dir=str(work_dir),
            base_dir=PAYLOAD_DIR,
        )
        shutil.move(archive, str(output_path))
    except OSError as e:
        raise ArchiveError(f"Could not write {output_path}: {e}") from e
    return output_path
