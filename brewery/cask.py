import shutil
import time
from pathlib import Path
from typing import Any, Dict, List, Sequence
from urllib.parse import urlparse

from brewery.api import file_sha256
from brewery.cellar import Cellar
from brewery.errors import ChecksumError
from brewery.models import Cask
from brewery.output import Output
from brewery.reinstall import CaskOptions

NO_CHECK = "no_check"


def artifact_names(data: Dict[str, Any]) -> List[str]:
    names = []
    for artifact in data.get("artifacts", []):
        if not isinstance(artifact, dict):
            continue
        for stanza, values in artifact.items():
            for value in values if isinstance(values, list) else [values]:
                if isinstance(value, str):
                    names.append(f"{stanza}: {value}")
    return names


class CaskInstaller:
    """Re-downloads cask artifacts into the Caskroom. Activating them is left to the user."""

    def __init__(self, cellar: Cellar, output: Output) -> None:
        self.cellar = cellar
        self.output = output
        self.config = cellar.config
        self.api = cellar.api

    def reinstall_casks(self, casks: Sequence[Cask], options: CaskOptions) -> None:
        for cask in casks:
            self._reinstall(cask, options, seen=set())

    def _reinstall(self, cask: Cask, options: CaskOptions, seen: set) -> None:
        seen.add(cask.token)
        data = self.api.cask(cask.token)

        sha256 = data.get("sha256") or NO_CHECK
        if options.require_sha and sha256 == NO_CHECK:
            raise ChecksumError(f"Cask '{cask.token}' does not have a sha256 checksum defined and was not installed.")

        if not options.skip_cask_deps:
            for dep in data.get("depends_on", {}).get("cask", []):
                if dep not in seen and not self.cellar.cask_entry(dep):
                    self.output.ohai(f"Installing {cask.token} dependency: {dep}")
                    self._reinstall(Cask(dep), options, seen)

        version = data["version"]
        url = data["url"]
        room = self.config.caskroom / cask.token
        dest = room / version / (Path(urlparse(url).path).name or cask.token)

        if options.zap and room.exists():
            self.output.log(f"Zapping {room}")
            shutil.rmtree(room)
        elif cask.version and (options.force or cask.version != version):
            shutil.rmtree(room / cask.version, ignore_errors=True)

        self.output.ohai(f"Reinstalling cask {cask.token}")
        started = time.monotonic()
        if not options.force and sha256 != NO_CHECK and dest.exists() and file_sha256(dest) == sha256:
            self.output.log(f"Using already downloaded {dest}")
        else:
            with self.output.progress() as progress:
                task_id = progress.add_task(f"Downloading {cask.token}...", total=None)
                self.api.download(url, dest, on_progress=lambda size, total: progress.update(
                    task_id, total=total or None, advance=size))

            if sha256 != NO_CHECK and file_sha256(dest) != sha256:
                dest.unlink()
                raise ChecksumError(f"SHA256 mismatch for cask {cask.token}")

        self.output.log(f"{cask.token}: binaries={options.binaries} quarantine={options.quarantine} "
                        f"adopt={options.adopt}")
        self.cellar.set_cask_entry(cask.token, {
            "version": version,
            "path": str(dest.parent),
            "download": str(dest),
            "artifacts": artifact_names(data),
            "binaries": options.binaries,
            "quarantine": options.quarantine,
            "adopt": options.adopt,
            "installed_time": time.time(),
        })
        self.output.record_time(cask.token, time.monotonic() - started)
        self.output.success(f"{cask.token} was successfully reinstalled!")
