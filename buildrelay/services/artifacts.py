"""Build artifact resolution and download."""

import base64
import binascii
from typing import Optional, Sequence, Union

import httpx
import structlog

from buildrelay.jobs.errors import DownloadError, NotFoundError
from buildrelay.jobs.models import Artifact, BuildFile, BuildInfo
from buildrelay.jobs.types import FileKind, StorageKind
from buildrelay.store.base import CoordinationStore, StoreError

logger = structlog.get_logger(__name__)

BUILDS_PATH = "builds"
BINARIES_PATH = "binaries"

DEFAULT_PREFERENCE = (FileKind.BIN, FileKind.HEX, FileKind.ELF)


class ArtifactFetcher:
    """
    Resolves a build id to its metadata and fetches firmware bytes.

    Inline builds keep base64 payloads in binaries/{buildId}/{kind}.
    External builds carry a downloadUrl per file, fetched over HTTP.
    """

    def __init__(
        self,
        store: CoordinationStore,
        preference: Sequence[Union[FileKind, str]] = DEFAULT_PREFERENCE,
        timeout: float = 60.0,
    ):
        """
        Initialize the fetcher.

        Args:
            store: Coordination store holding builds/ and binaries/
            preference: File kinds to try, most preferred first
            timeout: External download timeout in seconds
        """
        self.store = store
        self.preference = [FileKind(kind) for kind in preference]
        self.timeout = timeout

    async def resolve(self, build_id: str) -> BuildInfo:
        """Read builds/{buildId}. Raises NotFoundError if absent."""
        try:
            record = await self.store.read(f"{BUILDS_PATH}/{build_id}")
        except StoreError as e:
            raise DownloadError(f"Error fetching build info: {e}") from e

        if not isinstance(record, dict):
            raise NotFoundError(f"Build metadata not found for buildId: {build_id}")
        return BuildInfo.from_record(build_id, record)

    def select_file(self, build: BuildInfo) -> tuple[FileKind, BuildFile]:
        """First available file in preference order."""
        for kind in self.preference:
            if kind in build.files:
                return kind, build.files[kind]
        raise NotFoundError(
            "No downloadable files ("
            + ", ".join(f".{kind.value}" for kind in self.preference)
            + f") found in build metadata for buildId: {build.build_id}"
        )

    async def download(
        self,
        build_id: str,
        kind: Union[FileKind, str],
        build: Optional[BuildInfo] = None,
    ) -> Artifact:
        """
        Fetch one artifact file.

        Without build metadata, or when the build is inline or the file has
        no downloadUrl, the payload is read from the store.

        Raises:
            NotFoundError: No payload for this kind
            DownloadError: Transfer or base64 decoding failed
        """
        kind = FileKind(kind)
        entry = build.files.get(kind) if build else None

        if (
            build is not None
            and build.storage_kind == StorageKind.EXTERNAL
            and entry is not None
            and entry.download_url
        ):
            return await self._download_external(build_id, kind, entry)
        return await self._download_inline(build_id, kind, entry)

    async def fetch(self, build_id: str) -> Artifact:
        """Resolve the build and download its preferred file."""
        build = await self.resolve(build_id)
        kind, _ = self.select_file(build)
        return await self.download(build_id, kind, build)

    async def _download_external(
        self, build_id: str, kind: FileKind, entry: BuildFile
    ) -> Artifact:
        logger.info(
            "artifact_download_external",
            build_id=build_id,
            kind=kind.value,
            filename=entry.filename,
        )
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True
            ) as client:
                response = await client.get(entry.download_url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DownloadError(
                f"Download of {entry.filename} failed with status "
                f"{e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise DownloadError(f"Download of {entry.filename} failed: {e}") from e

        return Artifact(
            build_id=build_id,
            kind=kind,
            filename=entry.filename,
            content=response.content,
            source=StorageKind.EXTERNAL,
        )

    async def _download_inline(
        self, build_id: str, kind: FileKind, entry: Optional[BuildFile]
    ) -> Artifact:
        try:
            record = await self.store.read(f"{BINARIES_PATH}/{build_id}/{kind.value}")
        except StoreError as e:
            raise DownloadError(f"Error fetching binary: {e}") from e

        if not isinstance(record, dict) or not record.get("binary"):
            raise NotFoundError(
                f"Binary for file type '{kind.value}' not found for buildId: {build_id}."
            )

        try:
            content = base64.b64decode(record["binary"], validate=True)
        except (binascii.Error, ValueError) as e:
            raise DownloadError(
                f"Binary for file type '{kind.value}' is not valid base64"
            ) from e

        filename = record.get("filename") or (
            entry.filename if entry else f"{build_id}.{kind.value}"
        )
        logger.info(
            "artifact_download_inline",
            build_id=build_id,
            kind=kind.value,
            filename=filename,
            size=len(content),
        )
        return Artifact(
            build_id=build_id,
            kind=kind,
            filename=filename,
            content=content,
            source=StorageKind.INLINE,
        )
