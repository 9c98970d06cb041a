"""
OIDC-federated package publishing for CI pipelines.

This package publishes Python distributions to a Cloudsmith repository from
GitHub Actions by exchanging the run's OIDC identity token for a short-lived
registry credential, eliminating the need for a stored API key.
"""

__version__ = "0.1.0"
