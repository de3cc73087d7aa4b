"""Minimal Kubernetes API client for listing pods and nodes."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import requests

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
DEFAULT_TIMEOUT = 60.0


class KubeError(Exception):
    """A Kubernetes API call failed or no configuration was found."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class KubeClient:
    """Lists cluster-wide pods and nodes, one page at a time."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        verify: bool | str = True,
        session: Any = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.verify = verify
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    @classmethod
    def in_cluster(cls) -> KubeClient:
        """Configure from the service account mounted into a pod."""
        host = os.environ.get("KUBERNETES_SERVICE_HOST")
        port = os.environ.get("KUBERNETES_SERVICE_PORT")
        if not host or not port:
            raise KubeError(
                "unable to load in-cluster configuration, KUBERNETES_SERVICE_HOST "
                "and KUBERNETES_SERVICE_PORT must be defined"
            )
        try:
            token = (SERVICE_ACCOUNT_DIR / "token").read_text().strip()
        except OSError as exc:
            raise KubeError(f"reading service account token: {exc}") from exc
        ca_file = SERVICE_ACCOUNT_DIR / "ca.crt"
        verify: bool | str = str(ca_file) if ca_file.exists() else True
        if ":" in host:
            host = f"[{host}]"
        return cls(f"https://{host}:{port}", token=token, verify=verify)

    def list_pods(self, cont: str = "") -> tuple[list[dict[str, Any]], str]:
        """One page of pods across all namespaces, and the next continue token."""
        return self._list("/api/v1/pods", cont)

    def list_nodes(self, cont: str = "") -> tuple[list[dict[str, Any]], str]:
        """One page of nodes, and the next continue token."""
        return self._list("/api/v1/nodes", cont)

    def _list(self, path: str, cont: str) -> tuple[list[dict[str, Any]], str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        params = {"continue": cont} if cont else {}
        try:
            response = self.session.get(
                self.base_url + path,
                params=params,
                headers=headers,
                verify=self.verify,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise KubeError(f"listing {path}: {exc}") from exc
        try:
            data = response.json()
        except ValueError:
            data = None
        if response.status_code != 200:
            message = response.text
            if isinstance(data, dict) and data.get("message"):
                message = data["message"]
            raise KubeError(f"listing {path}: {message}", response.status_code)
        if not isinstance(data, dict):
            raise KubeError(f"listing {path}: malformed response")
        items = list(data.get("items") or [])
        next_cont = (data.get("metadata") or {}).get("continue") or ""
        return items, next_cont