"""Publish step: upload artifacts to the registry repository."""

from ..errors import RegistryError
from ..registry import RegistryClient
from .base import Step, RunState


class PublishStep(Step):
    """Upload every built artifact and register it as a package."""

    name = "publish"
    exit_code = 16
    requires_network = True

    def execute(self, state: RunState) -> str:
        if not state.artifacts:
            raise RegistryError("No artifacts to publish", step=self.name)
        if state.credential is None:
            raise RegistryError("No registry credential for this run", step=self.name)

        registry = state.config.registry
        client = RegistryClient(
            state.credential,
            namespace=state.context.namespace,
            repository=state.context.registry_repository,
            api_url=registry["api_url"],
            upload_url=registry["upload_url"],
            package_format=registry["format"],
            timeout=registry["timeout"],
        )

        pattern = state.config.build["artifact_pattern"]
        for artifact in state.artifacts:
            client.check_artifact(artifact, pattern)

        # Upload every file before creating any package, so a rejected upload
        # leaves nothing published
        identifiers = [client.upload_file(artifact) for artifact in state.artifacts]

        published = []
        for artifact, identifier in zip(state.artifacts, identifiers):
            try:
                package = client.create_package(identifier, republish=registry["republish"])
            except RegistryError as e:
                if published:
                    e.args = (f"{e} (already published: {', '.join(published)})",)
                raise
            artifact.package_slug = package.get("slug_perm") or package.get("slug")
            published.append(artifact.filename)
            print(f"  Published {artifact.filename} -> {artifact.package_slug or 'ok'}")

        target = f"{state.context.namespace}/{state.context.registry_repository}"
        return f"{len(state.artifacts)} artifact(s) published to {target}"
