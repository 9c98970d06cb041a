"""Cloudsmith registry client for publishing build artifacts."""

import fnmatch
import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional
import requests

from .credentials import ExchangeCredential, error_detail
from .errors import RegistryError, RegistryConflictError

# Status codes the registry uses for "this version already exists"
CONFLICT_STATUSES = (409, 422)


@dataclass
class BuildArtifact:
    """A distributable file produced by the build step."""

    path: Path
    size: int = 0
    sha256: str = ""
    package_slug: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def filename(self) -> str:
        return self.path.name

    @classmethod
    def from_path(cls, path: Path) -> "BuildArtifact":
        """Create artifact record with size and checksum."""
        path = Path(path)
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                digest.update(chunk)
        return cls(path=path, size=path.stat().st_size, sha256=digest.hexdigest())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the run report."""
        result = {
            "filename": self.filename,
            "sha256": self.sha256,
            "size": self.size,
        }
        if self.package_slug:
            result["package_slug"] = self.package_slug
        return result


class RegistryClient:
    """Uploads files to a Cloudsmith repository and registers them as packages."""

    def __init__(
        self,
        credential: ExchangeCredential,
        namespace: str,
        repository: str,
        api_url: str = "https://api.cloudsmith.io",
        upload_url: str = "https://upload.cloudsmith.io",
        package_format: str = "python",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.credential = credential
        self.namespace = namespace
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self.upload_url = upload_url.rstrip("/")
        self.package_format = package_format
        self.timeout = timeout
        self.session = session or requests.Session()

    def upload_file(self, artifact: BuildArtifact) -> str:
        """
        Upload raw file contents.

        Args:
            artifact: Artifact to upload

        Returns:
            File identifier to reference when creating the package
        """
        url = f"{self.upload_url}/{self.namespace}/{self.repository}/{artifact.filename}"
        headers = dict(self.credential.headers())
        headers["Content-Sha256"] = artifact.sha256

        try:
            with open(artifact.path, "rb") as f:
                response = self.session.put(
                    url, data=f, headers=headers, timeout=self.timeout
                )
        except requests.RequestException as e:
            raise RegistryError(
                f"Upload of {artifact.filename} failed: {type(e).__name__}",
                step="publish",
            )
        except OSError as e:
            raise RegistryError(
                f"Could not read {artifact.filename}: {e}", step="publish"
            )

        if response.status_code not in (200, 201):
            raise RegistryError(
                f"Registry rejected file {artifact.filename} "
                f"(HTTP {response.status_code}): {error_detail(response)}",
                step="publish",
                status_code=response.status_code,
            )

        try:
            return response.json()["identifier"]
        except (ValueError, KeyError, TypeError):
            raise RegistryError(
                f"Upload response for {artifact.filename} has no identifier",
                step="publish",
            )

    def create_package(self, identifier: str, republish: bool = True) -> Dict[str, Any]:
        """
        Register an uploaded file as a package in the repository.

        Args:
            identifier: File identifier from upload_file()
            republish: Overwrite an existing package with the same version

        Returns:
            Package document from the registry

        Raises:
            RegistryConflictError: If the version exists and republish is off
            RegistryError: For any other rejection
        """
        url = (
            f"{self.api_url}/v1/packages/{self.namespace}/{self.repository}"
            f"/upload/{self.package_format}/"
        )
        try:
            response = self.session.post(
                url,
                json={"package_file": identifier, "republish": republish},
                headers=self.credential.headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RegistryError(
                f"Package creation failed: {type(e).__name__}", step="publish"
            )

        if response.status_code in (200, 201):
            try:
                body = response.json()
            except ValueError:
                return {}
            return body if isinstance(body, dict) else {}

        detail = error_detail(response)
        if response.status_code in CONFLICT_STATUSES and not republish:
            raise RegistryConflictError(
                f"Package version already exists and republish is disabled: {detail}",
                step="publish",
                status_code=response.status_code,
            )
        raise RegistryError(
            f"Registry rejected package (HTTP {response.status_code}): {detail}",
            step="publish",
            status_code=response.status_code,
        )

    def check_artifact(self, artifact: BuildArtifact, pattern: str) -> None:
        """
        Refuse artifacts that are gone or do not match the configured pattern.

        Raises:
            RegistryError: Before any request is made
        """
        if not artifact.path.is_file():
            raise RegistryError(f"Artifact not found: {artifact.path}", step="publish")
        if not fnmatch.fnmatch(artifact.filename, pattern):
            raise RegistryError(
                f"Artifact {artifact.filename} does not match pattern {pattern}",
                step="publish",
            )
